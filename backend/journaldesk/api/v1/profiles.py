from fastapi import APIRouter, BackgroundTasks, Depends

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, get_session, require_admin
from journaldesk.models.profile import ProfileUpdate, RoleDecisionRequest
from journaldesk.services.profile_service import ProfileService

router = APIRouter(tags=["Profiles"])


@router.get("/profile")
async def get_profile(session: Session = Depends(get_session)):
    return {"success": True, "data": ProfileService().get(session)}


@router.put("/profile")
async def update_profile(payload: ProfileUpdate, session: Session = Depends(get_session)):
    """
    更新个人资料

    中文注释: is_editor / is_reviewer 不可自助修改，只能设置 request_editor / request_reviewer 申请。
    """
    return {"success": True, "data": ProfileService().update(session, payload)}


@router.get("/admin/role-requests")
async def list_role_requests(_session: Session = Depends(require_admin)):
    return {"success": True, "data": ProfileService().list_role_requests()}


@router.post("/admin/role-requests/{user_id}/approve")
async def approve_role_request(
    user_id: str,
    payload: RoleDecisionRequest,
    background_tasks: BackgroundTasks,
    _session: Session = Depends(require_admin),
):
    row = ProfileService().decide_role_request(user_id=user_id, role=payload.role, approve=True)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.post("/admin/role-requests/{user_id}/reject")
async def reject_role_request(
    user_id: str,
    payload: RoleDecisionRequest,
    background_tasks: BackgroundTasks,
    _session: Session = Depends(require_admin),
):
    row = ProfileService().decide_role_request(user_id=user_id, role=payload.role, approve=False)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}
