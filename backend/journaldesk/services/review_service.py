from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from journaldesk.core.config import JournalConfig
from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.lib.db_errors import http_error_from_db
from journaldesk.models.article import SubmissionStatus
from journaldesk.models.review import (
    ReviewDraft,
    ReviewState,
    ReviewSubmit,
    review_state,
    review_visibility,
)
from journaldesk.services.conflict_service import ConflictService, author_emails
from journaldesk.services.lifecycle_service import LifecycleService
from journaldesk.services.outbox_service import OutboxService, notification_row

logger = logging.getLogger("journaldesk.reviews")


def _rows(res: Any) -> List[Dict[str, Any]]:
    return getattr(res, "data", None) or []


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _with_state(row: Dict[str, Any]) -> Dict[str, Any]:
    return {**row, "state": review_state(row).value, "visibility": review_visibility(row)}


class ReviewService:
    """
    审稿分配与回收

    中文注释:
    - 状态由 ReviewState 显式管理；submitted_at 非空即 completed，之后只读。
    - 最终提交使用 "submitted_at is null" 作为条件更新，两个并发提交只有一个会成功。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.lifecycle = LifecycleService()
        self.outbox = OutboxService()

    # === 编辑侧 ===

    def list_reviewers(self, submission_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        审稿人目录；传入 submission_id 时为每位审稿人附带利益冲突标记（conflicts / risk_level）
        """
        res = (
            self.client.table("profiles")
            .select("id, full_name, email, affiliation")
            .eq("is_reviewer", True)
            .order("full_name", desc=False)
            .execute()
        )
        reviewers = _rows(res)
        if not submission_id:
            return reviewers
        submission = self.lifecycle.get_submission(submission_id)
        article = self.lifecycle.get_article(str(submission["article_id"]))
        return ConflictService().check(reviewers, submission_id, article.get("authors") or [])

    def list_for_submission(self, submission_id: str) -> List[Dict[str, Any]]:
        self.lifecycle.get_submission(submission_id)
        res = (
            self.client.table("reviews")
            .select("*")
            .eq("submission_id", submission_id)
            .order("created_at", desc=False)
            .execute()
        )
        reviews = _rows(res)
        reviewer_ids = list({str(r["reviewer_id"]) for r in reviews if r.get("reviewer_id")})
        profiles: Dict[str, Dict[str, Any]] = {}
        if reviewer_ids:
            p_res = self.client.table("profiles").select("id, full_name, email").in_("id", reviewer_ids).execute()
            profiles = {str(p["id"]): p for p in _rows(p_res)}
        return [{**_with_state(r), "reviewer": profiles.get(str(r.get("reviewer_id")))} for r in reviews]

    def assign_reviewers(
        self,
        session: Session,
        submission_id: str,
        reviewer_ids: List[str],
        deadline_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        批量邀请审稿人。

        中文注释:
        - 已分配过的 (submission, reviewer) 组合跳过并在返回值中列出；
        - 非审稿人身份、或邮箱出现在作者列表中的用户返回 400；
        - 存储过程 assign_reviewers 在一个事务内插入 reviews、把 submitted 流转到 under_review 并写入邀请通知。
        """
        submission = self.lifecycle.get_submission(submission_id)
        status = str(submission.get("status") or "")
        if status not in {SubmissionStatus.SUBMITTED.value, SubmissionStatus.UNDER_REVIEW.value}:
            raise HTTPException(status_code=400, detail=f"Cannot assign reviewers while submission is {status}")
        article = self.lifecycle.get_article(str(submission["article_id"]))
        title = article.get("title") or "Manuscript"

        wanted = list(dict.fromkeys(str(r) for r in reviewer_ids))
        if str(submission.get("submitter_id")) in wanted:
            raise HTTPException(status_code=400, detail="The submitter cannot review their own manuscript")
        p_res = self.client.table("profiles").select("id, email, is_reviewer, is_admin").in_("id", wanted).execute()
        profiles = _rows(p_res)
        eligible = {str(p["id"]) for p in profiles if p.get("is_reviewer") or p.get("is_admin")}
        invalid = [r for r in wanted if r not in eligible]
        if invalid:
            raise HTTPException(status_code=400, detail=f"Not reviewers: {', '.join(invalid)}")
        emails = author_emails(article.get("authors") or [])
        conflicted = [str(p["id"]) for p in profiles if str(p.get("email") or "").strip().lower() in emails]
        if conflicted:
            raise HTTPException(
                status_code=400,
                detail=f"Reviewers listed as authors of this manuscript: {', '.join(conflicted)}",
            )

        existing_res = self.client.table("reviews").select("reviewer_id").eq("submission_id", submission_id).execute()
        already = {str(r["reviewer_id"]) for r in _rows(existing_res)}
        to_invite = [r for r in wanted if r not in already]

        deadline = deadline_date or (
            datetime.now(timezone.utc).date() + timedelta(days=JournalConfig.from_env().review_deadline_days)
        )
        inserted: List[Dict[str, Any]] = []
        if to_invite:
            notices = [
                notification_row(
                    user_id=reviewer_id,
                    title="Review invitation",
                    message=f'You have been invited to review "{title}".',
                    template="review_assigned",
                    email_data={"title": title, "deadline_date": deadline.isoformat()},
                )
                for reviewer_id in to_invite
            ]
            params = {
                "p_submission_id": submission_id,
                "p_expected_status": status,
                "p_changed_by": session.user_id,
                "p_reviewer_ids": to_invite,
                "p_deadline_date": deadline.isoformat(),
                "p_notifications": notices,
            }
            try:
                res = self.client.rpc("assign_reviewers", params).execute()
            except Exception as e:
                raise http_error_from_db(
                    e,
                    action="Reviewer assignment",
                    not_found="Submission not found",
                    conflict="Submission or its reviewers were changed by someone else, reload and try again",
                ) from e
            data = getattr(res, "data", None) or {}
            inserted = list(data.get("assigned") or [])

        assigned_ids = {str(r.get("reviewer_id")) for r in inserted}
        skipped = [r for r in wanted if r not in assigned_ids]
        logger.info(
            "Submission %s: invited %s reviewer(s), skipped %s", submission_id, len(inserted), len(skipped)
        )
        return {"assigned": inserted, "skipped": skipped, "deadline_date": deadline.isoformat()}

    # === 审稿人侧 ===

    def get_own_review(self, session: Session, review_id: str) -> Dict[str, Any]:
        res = self.client.table("reviews").select("*").eq("id", review_id).limit(1).execute()
        rows = _rows(res)
        if not rows:
            raise HTTPException(status_code=404, detail="Review not found")
        review = rows[0]
        if str(review.get("reviewer_id")) != session.user_id:
            raise HTTPException(status_code=403, detail="This review is assigned to another reviewer")
        return review

    def list_mine(self, session: Session) -> Dict[str, List[Dict[str, Any]]]:
        res = (
            self.client.table("reviews")
            .select("*")
            .eq("reviewer_id", session.user_id)
            .order("invitation_sent_at", desc=True)
            .execute()
        )
        reviews = _rows(res)
        titles = self._titles_for([str(r["submission_id"]) for r in reviews])
        buckets: Dict[str, List[Dict[str, Any]]] = {"pending": [], "completed": []}
        for r in reviews:
            row = {**_with_state(r), "article": titles.get(str(r["submission_id"]))}
            if row["state"] == ReviewState.DECLINED.value:
                continue
            buckets[row["visibility"]].append(row)
        return buckets

    def _titles_for(self, submission_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        if not submission_ids:
            return {}
        s_res = self.client.table("submissions").select("id, article_id").in_("id", submission_ids).execute()
        article_by_submission = {str(s["id"]): str(s["article_id"]) for s in _rows(s_res)}
        if not article_by_submission:
            return {}
        a_res = (
            self.client.table("articles")
            .select("id, title, abstract, keywords, manuscript_file_url")
            .in_("id", list(set(article_by_submission.values())))
            .execute()
        )
        articles = {str(a["id"]): a for a in _rows(a_res)}
        return {sid: articles.get(aid) for sid, aid in article_by_submission.items()}

    def get_for_reviewer(self, session: Session, review_id: str) -> Dict[str, Any]:
        review = self.get_own_review(session, review_id)
        article = self._titles_for([str(review["submission_id"])]).get(str(review["submission_id"]))
        return {**_with_state(review), "article": article}

    def _ensure_state(self, review: Dict[str, Any], target: ReviewState) -> ReviewState:
        current = review_state(review)
        if current == ReviewState.COMPLETED:
            raise HTTPException(status_code=409, detail="Review has already been submitted")
        if not ReviewState.can_transition(current, target):
            raise HTTPException(
                status_code=400, detail=f"Invalid review transition: {current.value} -> {target.value}"
            )
        return current

    def respond(self, session: Session, review_id: str, accept: bool) -> Dict[str, Any]:
        review = self.get_own_review(session, review_id)
        target = ReviewState.ACCEPTED if accept else ReviewState.DECLINED
        current = self._ensure_state(review, target)
        res = (
            self.client.table("reviews")
            .update({"invitation_status": target.value, "responded_at": _now(), "updated_at": _now()})
            .eq("id", review_id)
            .eq("invitation_status", review.get("invitation_status") or current.value)
            .is_("submitted_at", "null")
            .execute()
        )
        rows = _rows(res)
        if not rows:
            raise HTTPException(status_code=409, detail="Review was changed concurrently, reload and try again")
        return _with_state(rows[0])

    def save_draft(self, session: Session, review_id: str, draft: ReviewDraft) -> Dict[str, Any]:
        review = self.get_own_review(session, review_id)
        if review_state(review) == ReviewState.COMPLETED:
            raise HTTPException(status_code=409, detail="Review has already been submitted")
        if review_state(review) == ReviewState.DECLINED:
            raise HTTPException(status_code=400, detail="Review invitation was declined")
        updates = draft.model_dump(exclude_unset=True)
        updates["updated_at"] = _now()
        res = (
            self.client.table("reviews")
            .update(updates)
            .eq("id", review_id)
            .is_("submitted_at", "null")
            .execute()
        )
        rows = _rows(res)
        if not rows:
            raise HTTPException(status_code=409, detail="Review has already been submitted")
        return _with_state(rows[0])

    def submit(self, session: Session, review_id: str, payload: ReviewSubmit) -> Dict[str, Any]:
        review = self.get_own_review(session, review_id)
        self._ensure_state(review, ReviewState.COMPLETED)
        submitted_at = _now()
        res = (
            self.client.table("reviews")
            .update(
                {
                    "recommendation": payload.recommendation,
                    "comments_to_author": payload.comments_to_author,
                    "comments_to_editor": payload.comments_to_editor,
                    "invitation_status": ReviewState.COMPLETED.value,
                    "submitted_at": submitted_at,
                    "updated_at": submitted_at,
                }
            )
            .eq("id", review_id)
            .is_("submitted_at", "null")
            .execute()
        )
        rows = _rows(res)
        if not rows:
            raise HTTPException(status_code=409, detail="Review has already been submitted")

        submission_id = str(review["submission_id"])
        title = (self._titles_for([submission_id]).get(submission_id) or {}).get("title") or "Manuscript"
        reviewer_name = session.current_user.full_name
        try:
            self.outbox.enqueue_rows(
                notification_row(
                    user_id=editor_id,
                    title="Review completed",
                    message=f'A review of "{title}" was submitted.',
                    template="review_submitted",
                    email_data={
                        "title": title,
                        "recommendation": payload.recommendation,
                        "reviewer_name": reviewer_name,
                    },
                )
                for editor_id in self.outbox.handling_editor_ids(submission_id)
            )
        except Exception as e:
            # 审稿已落库；通知写入失败只记录，不回滚审稿
            logger.warning("Failed to enqueue review_submitted for %s: %s", review_id, e)
        return _with_state(rows[0])
