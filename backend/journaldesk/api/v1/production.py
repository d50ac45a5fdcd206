from fastapi import APIRouter, BackgroundTasks, Depends

from journaldesk.core.outbox_worker import process_outbox_once
from journaldesk.core.session import Session, require_editor
from journaldesk.models.publication import ProductionAdvanceRequest
from journaldesk.services.production_service import ProductionService

router = APIRouter(prefix="/production", tags=["Production"])


@router.get("/articles")
async def list_production_articles(_session: Session = Depends(require_editor)):
    return {"success": True, "data": ProductionService().list_articles()}


@router.post("/submissions/{submission_id}/advance")
async def advance_production(
    submission_id: str,
    payload: ProductionAdvanceRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_editor),
):
    """沿生产链推进：accepted -> in_production -> copyediting -> proofreading -> typesetting -> ready_for_publication"""
    row = ProductionService().advance(session, submission_id, payload.status.value, payload.comment)
    background_tasks.add_task(process_outbox_once)
    return {"success": True, "data": row}
