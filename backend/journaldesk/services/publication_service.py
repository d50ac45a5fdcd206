from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from journaldesk.core.config import JournalConfig
from journaldesk.core.doi_generator import generate_doi
from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.lib.db_errors import http_error_from_db, is_unique_violation
from journaldesk.models.article import PUBLICATION_STATUSES, SubmissionStatus
from journaldesk.models.publication import PublishRequest
from journaldesk.services.lifecycle_service import LifecycleService
from journaldesk.services.outbox_service import notification_row
from journaldesk.services.production_service import list_articles_in

logger = logging.getLogger("journaldesk.publication")

MAX_DOI_ATTEMPTS = 5


class PublicationService:
    """
    发布：DOI / 卷期页码 / 发布日期 + published 流转

    中文注释:
    - DOI 候选值对 articles.doi 查重（有限次重试），数据库唯一索引兜底并发；
    - 发布通知发给 submissions.submitter_id（不是 corresponding_author_email）；
    - 已发布的文章再次提交只更新元数据，不再流转状态。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.lifecycle = LifecycleService()
        self.journal = JournalConfig.from_env()

    def list_articles(self) -> List[Dict[str, Any]]:
        return list_articles_in(PUBLICATION_STATUSES)

    def _doi_owner(self, doi: str) -> Optional[str]:
        res = self.client.table("articles").select("id").eq("doi", doi).limit(1).execute()
        rows = getattr(res, "data", None) or []
        return str(rows[0]["id"]) if rows else None

    def generate_unique_doi(self) -> str:
        for _ in range(MAX_DOI_ATTEMPTS):
            candidate = generate_doi(prefix=self.journal.doi_prefix)
            if self._doi_owner(candidate) is None:
                return candidate
            logger.info("DOI collision on %s, retrying", candidate)
        raise HTTPException(status_code=503, detail="Could not generate a unique DOI, try again")

    def publish(self, session: Session, submission_id: str, payload: PublishRequest) -> Dict[str, Any]:
        submission = self.lifecycle.get_submission(submission_id)
        article_id = str(submission["article_id"])
        article = self.lifecycle.get_article(article_id)

        if payload.doi:
            owner = self._doi_owner(payload.doi)
            if owner and owner != article_id:
                raise HTTPException(status_code=409, detail="DOI is already assigned to another article")

        if submission.get("status") == SubmissionStatus.PUBLISHED.value:
            # 已发布：只更新显式提交的元数据
            updates = payload.metadata_updates()
            page_start = updates.get("page_start", article.get("page_start"))
            page_end = updates.get("page_end", article.get("page_end"))
            if page_start is not None and page_end is not None and int(page_end) < int(page_start):
                raise HTTPException(status_code=400, detail="page_end must be greater than or equal to page_start")
            if not updates:
                return {**submission, "article": article}
            try:
                res = self.client.table("articles").update(
                    {**updates, "updated_at": datetime.now(timezone.utc).isoformat()}
                ).eq("id", article_id).execute()
            except Exception as e:
                if is_unique_violation(e):
                    raise HTTPException(status_code=409, detail="DOI is already assigned to another article") from e
                raise http_error_from_db(e, action="Publication metadata update") from e
            rows = getattr(res, "data", None) or []
            logger.info("Article %s: publication metadata updated (%s)", article_id, ", ".join(sorted(updates)))
            return {**submission, "article": rows[0] if rows else {**article, **updates}}

        updates = payload.article_updates(default_date=datetime.now(timezone.utc).date())

        title = article.get("title") or "Manuscript"
        notice = notification_row(
            user_id=str(submission["submitter_id"]),
            title="Article published",
            message=f'"{title}" has been published.',
            template="article_published",
            email_data={
                "title": title,
                "doi": updates.get("doi"),
                "volume": updates.get("volume"),
                "issue": updates.get("issue"),
                "publication_date": updates.get("publication_date"),
            },
            type="success",
        )
        row = self.lifecycle.transition(
            submission_id=submission_id,
            to_status=SubmissionStatus.PUBLISHED.value,
            changed_by=session.user_id,
            allow_skip=session.is_admin,
            comment="Published",
            article_updates=updates,
            notifications=[notice],
            current=submission,
        )
        return {**row, "article": {**article, **updates, "status": SubmissionStatus.PUBLISHED.value}}
