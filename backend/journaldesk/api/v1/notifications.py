from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from journaldesk.core.mail import EMAIL_SUBJECTS
from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, get_session, require_editor
from journaldesk.models.notification import NotificationRequest
from journaldesk.services.notification_service import NotificationService
from journaldesk.services.outbox_service import OutboxService

router = APIRouter(tags=["Notifications"])


@router.get("/notifications")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    session: Session = Depends(get_session),
):
    rows = NotificationService().list_for_user(user_id=session.user_id, limit=limit, unread_only=unread_only)
    return {"success": True, "data": rows}


@router.patch("/notifications/{id}/read")
async def mark_notification_read(id: str, session: Session = Depends(get_session)):
    updated = NotificationService().mark_read(user_id=session.user_id, notification_id=id)
    if updated is None:
        # 中文注释: 不存在或不属于当前用户，统一 404
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "data": updated}


@router.post("/notifications/send", status_code=202)
async def send_notification(
    payload: NotificationRequest,
    background_tasks: BackgroundTasks,
    _session: Session = Depends(require_editor),
):
    """
    写入一条独立通知，由 outbox 异步投递。
    """
    if payload.email_template and payload.email_template not in EMAIL_SUBJECTS:
        raise HTTPException(status_code=422, detail=f"Unknown email template: {payload.email_template}")
    row = OutboxService().enqueue(payload)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": {"id": row.get("id"), "status": row.get("status", "pending")}}
