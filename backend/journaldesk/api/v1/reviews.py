from fastapi import APIRouter, BackgroundTasks, Depends

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, require_reviewer
from journaldesk.models.review import ReviewDraft, ReviewResponseRequest, ReviewSubmit
from journaldesk.services.review_service import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("/mine")
async def list_my_reviews(session: Session = Depends(require_reviewer)):
    """审稿人工作台：pending / completed 两组（已拒绝的邀请不展示）"""
    return {"success": True, "data": ReviewService().list_mine(session)}


@router.get("/{review_id}")
async def get_review(review_id: str, session: Session = Depends(require_reviewer)):
    return {"success": True, "data": ReviewService().get_for_reviewer(session, review_id)}


@router.post("/{review_id}/respond")
async def respond_to_invitation(
    review_id: str,
    payload: ReviewResponseRequest,
    session: Session = Depends(require_reviewer),
):
    return {"success": True, "data": ReviewService().respond(session, review_id, payload.accept)}


@router.put("/{review_id}/draft")
async def save_review_draft(
    review_id: str,
    payload: ReviewDraft,
    session: Session = Depends(require_reviewer),
):
    return {"success": True, "data": ReviewService().save_draft(session, review_id, payload)}


@router.post("/{review_id}/submit")
async def submit_review(
    review_id: str,
    payload: ReviewSubmit,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_reviewer),
):
    """
    最终提交审稿意见

    中文注释:
    - recommendation / comments_to_author 缺失时 Pydantic 直接 422（不会访问数据库）。
    - 已提交的审稿返回 409，表单只读。
    """
    row = ReviewService().submit(session, review_id, payload)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}
