from fastapi import APIRouter, Depends

from journaldesk.core.outbox_worker import OutboxWorker
from journaldesk.core.security import require_admin_key

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/cron/process-outbox")
async def process_outbox(_admin: None = Depends(require_admin_key)):
    """
    触发一次 outbox 投递（内部接口，供平台 Cron 调用）
    """
    result = OutboxWorker().run_once()
    return {"success": True, **result}
