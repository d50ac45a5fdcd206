from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.models.article import PRODUCTION_STATUSES, SubmissionStatus
from journaldesk.services.lifecycle_service import LifecycleService
from journaldesk.services.outbox_service import notification_row

# 生产阶段内可推进的目标状态（published 只能走发布流程，以便带上 DOI 等元数据）
_ADVANCE_TARGETS = {
    SubmissionStatus.IN_PRODUCTION.value,
    SubmissionStatus.COPYEDITING.value,
    SubmissionStatus.PROOFREADING.value,
    SubmissionStatus.TYPESETTING.value,
    SubmissionStatus.READY_FOR_PUBLICATION.value,
}


def list_articles_in(statuses: tuple[str, ...]) -> List[Dict[str, Any]]:
    """按文章状态列出文章，并附带对应 submission（id / submitter_id）"""
    res = (
        supabase_admin.table("articles")
        .select("*")
        .in_("status", list(statuses))
        .order("updated_at", desc=True)
        .execute()
    )
    articles = getattr(res, "data", None) or []
    ids = [str(a["id"]) for a in articles]
    by_article: Dict[str, Dict[str, Any]] = {}
    if ids:
        s_res = (
            supabase_admin.table("submissions")
            .select("id, article_id, submitter_id, status")
            .in_("article_id", ids)
            .execute()
        )
        by_article = {str(s["article_id"]): s for s in getattr(s_res, "data", None) or []}
    return [{**a, "submission": by_article.get(str(a["id"]))} for a in articles]


class ProductionService:
    def __init__(self) -> None:
        self.lifecycle = LifecycleService()

    def list_articles(self) -> List[Dict[str, Any]]:
        return list_articles_in(PRODUCTION_STATUSES)

    def advance(
        self, session: Session, submission_id: str, to_status: str, comment: Optional[str] = None
    ) -> Dict[str, Any]:
        if to_status not in _ADVANCE_TARGETS:
            raise HTTPException(status_code=400, detail="Use the publication endpoint to publish an article")
        submission = self.lifecycle.get_submission(submission_id)
        if submission.get("status") not in PRODUCTION_STATUSES:
            raise HTTPException(status_code=400, detail="Submission is not in production")
        article = self.lifecycle.get_article(str(submission["article_id"]))
        title = article.get("title") or "Manuscript"
        notice = notification_row(
            user_id=str(submission["submitter_id"]),
            title="Production update",
            message=f'"{title}" moved to {to_status.replace("_", " ")}.',
            email=False,
        )
        return self.lifecycle.transition(
            submission_id=submission_id,
            to_status=to_status,
            changed_by=session.user_id,
            comment=comment,
            notifications=[notice],
            current=submission,
        )
