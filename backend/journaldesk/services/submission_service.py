from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.lib.db_errors import http_error_from_db
from journaldesk.models.article import ArticleSubmission
from journaldesk.models.review import review_state, review_visibility
from journaldesk.services.outbox_service import OutboxService, notification_row

logger = logging.getLogger("journaldesk.submissions")

# 作者只能看到审稿意见中的这些字段（comments_to_editor / reviewer_id 对作者保密）
AUTHOR_REVIEW_FIELDS = ("id", "recommendation", "comments_to_author", "submitted_at")


def _rows(res: Any) -> List[Dict[str, Any]]:
    return getattr(res, "data", None) or []


class SubmissionService:
    """
    投稿与作者视图

    中文注释:
    - submit 调用存储过程 submit_article：article(draft) + submission(submitted) + 通知 outbox 一个事务完成；
    - 失败时把表单写入 submission_drafts，作者重试时可直接恢复。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.outbox = OutboxService()

    # === 投稿 ===

    def _submission_notifications(
        self, session: Session, form: ArticleSubmission
    ) -> List[Dict[str, Any]]:
        author_name = session.current_user.full_name or form.authors[0].name
        rows = [
            notification_row(
                user_id=session.user_id,
                title="Submission received",
                message=f'Your manuscript "{form.title}" has been submitted.',
                template="submission_received",
                email_data={"title": form.title},
                type="success",
            )
        ]
        for admin_id in self.outbox.admin_ids():
            if admin_id == session.user_id:
                continue
            rows.append(
                notification_row(
                    user_id=admin_id,
                    title="New submission",
                    message=f'"{form.title}" was submitted by {author_name}.',
                    template="admin_new_submission",
                    email_data={"title": form.title, "author_name": author_name},
                )
            )
        return rows

    def submit(self, session: Session, form: ArticleSubmission) -> Dict[str, Any]:
        try:
            notifications = self._submission_notifications(session, form)
            res = self.client.rpc(
                "submit_article",
                {
                    "p_submitter_id": session.user_id,
                    "p_article": form.article_row(),
                    "p_cover_letter": form.cover_letter,
                    "p_notifications": notifications,
                },
            ).execute()
        except Exception as e:
            logger.warning("Submission failed for %s, saving draft: %s", session.user_id, e)
            try:
                self.save_draft(session.user_id, form.model_dump(mode="json"))
            except Exception as draft_err:
                logger.error("Draft autosave failed for %s: %s", session.user_id, draft_err)
            raise http_error_from_db(e, action="Submission") from e

        data = getattr(res, "data", None) or {}
        if isinstance(data, list):
            data = data[0] if data else {}
        logger.info("Article %s submitted by %s", data.get("article_id"), session.user_id)
        return data

    # === 草稿自动保存 ===

    def get_draft(self, user_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("submission_drafts").select("*").eq("user_id", user_id).limit(1).execute()
        rows = _rows(res)
        return rows[0] if rows else None

    def save_draft(self, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        row = {
            "user_id": user_id,
            "payload": payload,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        res = self.client.table("submission_drafts").upsert(row, on_conflict="user_id").execute()
        rows = _rows(res)
        return rows[0] if rows else row

    def delete_draft(self, user_id: str) -> None:
        self.client.table("submission_drafts").delete().eq("user_id", user_id).execute()

    # === 作者视图 ===

    def _articles_by_id(self, article_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        if not article_ids:
            return {}
        res = self.client.table("articles").select("*").in_("id", article_ids).execute()
        return {str(a["id"]): a for a in _rows(res)}

    def list_mine(self, session: Session) -> List[Dict[str, Any]]:
        res = (
            self.client.table("submissions")
            .select("*")
            .eq("submitter_id", session.user_id)
            .order("submitted_at", desc=True)
            .execute()
        )
        submissions = _rows(res)
        articles = self._articles_by_id([str(s["article_id"]) for s in submissions])
        return [{**s, "article": articles.get(str(s["article_id"]))} for s in submissions]

    def get_visible_submission(self, session: Session, submission_id: str) -> Dict[str, Any]:
        """作者本人或编辑/管理员可见，其余 403"""
        res = self.client.table("submissions").select("*").eq("id", submission_id).limit(1).execute()
        rows = _rows(res)
        if not rows:
            raise HTTPException(status_code=404, detail="Submission not found")
        submission = rows[0]
        if str(submission.get("submitter_id")) != session.user_id and not session.can_edit:
            raise HTTPException(status_code=403, detail="You do not have access to this submission")
        return submission

    def list_decisions(self, session: Session, submission_id: str) -> List[Dict[str, Any]]:
        self.get_visible_submission(session, submission_id)
        res = (
            self.client.table("editorial_decisions")
            .select("*")
            .eq("submission_id", submission_id)
            .order("created_at", desc=True)
            .execute()
        )
        return _rows(res)

    def list_files(self, session: Session, submission_id: str) -> List[Dict[str, Any]]:
        submission = self.get_visible_submission(session, submission_id)
        res = (
            self.client.table("file_versions")
            .select("*")
            .eq("article_id", submission["article_id"])
            .order("version_number", desc=True)
            .execute()
        )
        return _rows(res)

    def list_reviews(self, session: Session, submission_id: str) -> List[Dict[str, Any]]:
        """
        中文注释:
        - 编辑/管理员：全部审稿记录（含 comments_to_editor）。
        - 作者：只返回已完成的审稿，且只含对作者公开的字段。
        """
        submission = self.get_visible_submission(session, submission_id)
        res = (
            self.client.table("reviews")
            .select("*")
            .eq("submission_id", submission_id)
            .order("created_at", desc=False)
            .execute()
        )
        reviews = _rows(res)
        if session.can_edit:
            return [
                {**r, "state": review_state(r).value, "visibility": review_visibility(r)}
                for r in reviews
            ]
        if str(submission.get("submitter_id")) != session.user_id:
            raise HTTPException(status_code=403, detail="You do not have access to these reviews")
        return [
            {k: r.get(k) for k in AUTHOR_REVIEW_FIELDS}
            for r in reviews
            if review_visibility(r) == "completed"
        ]

    def get_detail(self, session: Session, submission_id: str) -> Dict[str, Any]:
        submission = self.get_visible_submission(session, submission_id)
        article = self._articles_by_id([str(submission["article_id"])]).get(str(submission["article_id"]))
        latest = (
            self.client.table("revision_requests")
            .select("*")
            .eq("submission_id", submission_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        latest_rows = _rows(latest)
        return {
            **submission,
            "article": article,
            "decisions": self.list_decisions(session, submission_id),
            "latest_revision_request": latest_rows[0] if latest_rows else None,
            "files": self.list_files(session, submission_id),
        }
