from fastapi import APIRouter, BackgroundTasks, Depends

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, require_editor
from journaldesk.models.publication import PublishRequest
from journaldesk.services.publication_service import PublicationService

router = APIRouter(prefix="/publication", tags=["Publication"])


@router.get("/articles")
async def list_publication_articles(_session: Session = Depends(require_editor)):
    return {"success": True, "data": PublicationService().list_articles()}


@router.post("/doi")
async def generate_doi(_session: Session = Depends(require_editor)):
    """生成一个未被占用的 DOI 候选值（只生成，不落库）"""
    return {"success": True, "data": {"doi": PublicationService().generate_unique_doi()}}


@router.post("/submissions/{submission_id}/publish")
async def publish_article(
    submission_id: str,
    payload: PublishRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    data = PublicationService().publish(session, submission_id, payload)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": data}
