from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, UploadFile

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, get_session
from journaldesk.models.article import ArticleSubmission
from journaldesk.services.storage_service import store_manuscript
from journaldesk.services.submission_service import SubmissionService

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.post("", status_code=201)
async def submit_article(
    form: ArticleSubmission,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    投稿

    中文注释: 表单校验失败时 FastAPI 直接 422，不会产生任何数据库调用。
    """
    data = SubmissionService().submit(session, form)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": data}


@router.post("/upload", status_code=201)
async def upload_manuscript(
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
):
    stored = await store_manuscript(file, user_id=session.user_id)
    return {
        "success": True,
        "data": {
            "url": stored.url,
            "path": stored.path,
            "file_name": stored.file_name,
            "file_size": stored.size,
        },
    }


@router.get("/draft")
async def get_draft(session: Session = Depends(get_session)):
    draft = SubmissionService().get_draft(session.user_id)
    return {"success": True, "data": draft}


@router.put("/draft")
async def save_draft(
    payload: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    draft = SubmissionService().save_draft(session.user_id, payload)
    return {"success": True, "data": draft}


@router.delete("/draft")
async def delete_draft(session: Session = Depends(get_session)):
    SubmissionService().delete_draft(session.user_id)
    return {"success": True}


@router.get("/mine")
async def list_my_submissions(session: Session = Depends(get_session)):
    return {"success": True, "data": SubmissionService().list_mine(session)}


@router.get("/{submission_id}")
async def get_submission(submission_id: str, session: Session = Depends(get_session)):
    return {"success": True, "data": SubmissionService().get_detail(session, submission_id)}


@router.get("/{submission_id}/reviews")
async def get_submission_reviews(submission_id: str, session: Session = Depends(get_session)):
    return {"success": True, "data": SubmissionService().list_reviews(session, submission_id)}


@router.get("/{submission_id}/decisions")
async def get_submission_decisions(submission_id: str, session: Session = Depends(get_session)):
    return {"success": True, "data": SubmissionService().list_decisions(session, submission_id)}


@router.get("/{submission_id}/files")
async def get_submission_files(submission_id: str, session: Session = Depends(get_session)):
    return {"success": True, "data": SubmissionService().list_files(session, submission_id)}
