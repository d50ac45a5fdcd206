from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, get_session
from journaldesk.models.decision import RevisionSubmitRequest
from journaldesk.services.revision_service import RevisionService

router = APIRouter(prefix="/submissions", tags=["Revisions"])


@router.get("/{submission_id}/revision")
async def get_revision(submission_id: str, session: Session = Depends(get_session)):
    """最新一条修回请求 + 已上传的文件版本"""
    return {"success": True, "data": RevisionService().get_for_author(session, submission_id)}


@router.post("/{submission_id}/revision/files", status_code=201)
async def upload_revision_file(
    submission_id: str,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    session: Session = Depends(get_session),
):
    version = await RevisionService().upload_file(session, submission_id, file, description)
    return {"success": True, "data": version}


@router.post("/{submission_id}/revision/submit")
async def submit_revision(
    submission_id: str,
    payload: RevisionSubmitRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    data = RevisionService().submit(session, submission_id, payload.response_notes)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": data}
