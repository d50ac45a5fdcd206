from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, require_editor
from journaldesk.models.article import StatusChangeRequest
from journaldesk.models.decision import ApproveRequest, RejectRequest, RevisionRequestCreate
from journaldesk.models.review import ReviewerAssignmentRequest
from journaldesk.services.editorial_service import EditorialService
from journaldesk.services.review_service import ReviewService

router = APIRouter(prefix="/editorial", tags=["Editorial"])


@router.get("/submissions")
async def list_submissions(_session: Session = Depends(require_editor)):
    """
    编辑工作台：submitted / under_review / revision_requested / completed 四个分组
    """
    return {"success": True, "data": EditorialService().list_buckets()}


@router.post("/submissions/{submission_id}/status")
async def change_status(
    submission_id: str,
    payload: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    """
    通用状态流转（例如 Start Review: submitted -> under_review）

    中文注释: 管理员允许跳过中间阶段（allow_skip），编辑严格按状态机。
    """
    row = EditorialService().change_status(session, submission_id, payload.status.value, payload.comment)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.post("/submissions/{submission_id}/approve")
async def approve_submission(
    submission_id: str,
    payload: ApproveRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    row = EditorialService().approve(session, submission_id, payload.rationale)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.post("/submissions/{submission_id}/reject")
async def reject_submission(
    submission_id: str,
    payload: RejectRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    row = EditorialService().reject(session, submission_id, payload.rationale)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.post("/submissions/{submission_id}/desk-reject")
async def desk_reject_submission(
    submission_id: str,
    payload: RejectRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    row = EditorialService().desk_reject(session, submission_id, payload.rationale)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.post("/submissions/{submission_id}/revision-request")
async def request_revision(
    submission_id: str,
    payload: RevisionRequestCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    row = EditorialService().request_revision(session, submission_id, payload)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}


@router.get("/reviewers")
async def list_reviewers(submission_id: Optional[str] = None, _session: Session = Depends(require_editor)):
    """
    审稿人目录；带 ?submission_id= 时附带针对该稿件的利益冲突标记
    """
    return {"success": True, "data": ReviewService().list_reviewers(submission_id)}


@router.post("/submissions/{submission_id}/reviewers")
async def assign_reviewers(
    submission_id: str,
    payload: ReviewerAssignmentRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    result = ReviewService().assign_reviewers(
        session,
        submission_id,
        [str(r) for r in payload.reviewer_ids],
        payload.deadline_date,
    )
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": result}


@router.get("/submissions/{submission_id}/reviews")
async def list_submission_reviews(submission_id: str, _session: Session = Depends(require_editor)):
    return {"success": True, "data": ReviewService().list_for_submission(submission_id)}
