from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, UploadFile

from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.models.article import SubmissionStatus
from journaldesk.services.file_version_service import FileVersionService
from journaldesk.services.lifecycle_service import LifecycleService
from journaldesk.services.outbox_service import OutboxService, notification_row
from journaldesk.services.storage_service import store_manuscript

logger = logging.getLogger("journaldesk.revisions")


class RevisionService:
    """
    修回门户（作者侧）

    中文注释:
    - 只有投稿人本人、且稿件处于 revision_requested 时可以上传修回稿/提交修回；
    - 只认最新一条 revision_request（created_at desc limit 1）；
    - 提交修回：revision_requested -> under_review + revision_submitted 决策记录 + 通知编辑（同一事务）。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.lifecycle = LifecycleService()
        self.versions = FileVersionService()
        self.outbox = OutboxService()

    def latest_request(self, submission_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("revision_requests")
            .select("*")
            .eq("submission_id", submission_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return rows[0] if rows else None

    def _own_submission(self, session: Session, submission_id: str) -> Dict[str, Any]:
        submission = self.lifecycle.get_submission(submission_id)
        if str(submission.get("submitter_id")) != session.user_id:
            raise HTTPException(status_code=403, detail="Only the submitter can revise this manuscript")
        return submission

    def _require_open(self, submission: Dict[str, Any]) -> None:
        if submission.get("status") != SubmissionStatus.REVISION_REQUESTED.value:
            raise HTTPException(status_code=400, detail="No revision is currently requested for this submission")

    def get_for_author(self, session: Session, submission_id: str) -> Dict[str, Any]:
        submission = self.lifecycle.get_submission(submission_id)
        if str(submission.get("submitter_id")) != session.user_id and not session.can_edit:
            raise HTTPException(status_code=403, detail="You do not have access to this submission")
        request = self.latest_request(submission_id)
        if request is None:
            raise HTTPException(status_code=404, detail="No revision request found")
        article_id = str(submission["article_id"])
        return {
            "submission_id": submission_id,
            "status": submission.get("status"),
            "revision_request": request,
            "files": self.versions.list_for_article(article_id),
            "next_version_number": self.versions.peek_next_version_number(article_id),
        }

    async def upload_file(
        self,
        session: Session,
        submission_id: str,
        file: UploadFile,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        submission = self._own_submission(session, submission_id)
        self._require_open(submission)
        stored = await store_manuscript(file, user_id=session.user_id, folder="revisions")
        return self.versions.create_version(
            article_id=str(submission["article_id"]),
            file_url=stored.url,
            uploaded_by=session.user_id,
            file_description=description,
            file_name=stored.file_name,
            file_type=stored.content_type,
            file_size=stored.size,
        )

    def submit(self, session: Session, submission_id: str, response_notes: str) -> Dict[str, Any]:
        submission = self._own_submission(session, submission_id)
        self._require_open(submission)
        if self.latest_request(submission_id) is None:
            raise HTTPException(status_code=400, detail="No revision request found")

        article = self.lifecycle.get_article(str(submission["article_id"]))
        title = article.get("title") or "Manuscript"
        notices = [
            notification_row(
                user_id=editor_id,
                title="Revision submitted",
                message=f'The author submitted a revision of "{title}".',
                template="revision_submitted",
                email_data={"title": title},
            )
            for editor_id in self.outbox.handling_editor_ids(submission_id)
            if editor_id != session.user_id
        ]
        return self.lifecycle.transition(
            submission_id=submission_id,
            to_status=SubmissionStatus.UNDER_REVIEW.value,
            changed_by=session.user_id,
            comment="Revision submitted",
            decision={"decision_type": "revision_submitted", "decision_rationale": response_notes},
            notifications=notices,
            current=submission,
        )
