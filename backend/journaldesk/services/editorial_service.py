from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from journaldesk.core.session import Session
from journaldesk.lib.api_client import supabase_admin
from journaldesk.models.article import (
    DECISION_ACTIONS,
    EDITORIAL_BUCKETS,
    GENERIC_STATUS_TARGETS,
    PRODUCTION_STATUSES,
    SubmissionStatus,
    bucket_for,
)
from journaldesk.models.decision import RevisionRequestCreate
from journaldesk.services.lifecycle_service import LifecycleService
from journaldesk.services.outbox_service import notification_row

logger = logging.getLogger("journaldesk.editorial")

_STATUS_LABELS = {s.value: s.value.replace("_", " ") for s in SubmissionStatus}


def _rows(res: Any) -> List[Dict[str, Any]]:
    return getattr(res, "data", None) or []


class EditorialService:
    """
    编辑工作台：分组列表 + 各类决策动作

    中文注释:
    - 每个决策动作 = 一次 LifecycleService.transition（事务内写决策/修回请求/outbox）。
    - 决策记录只追加，不提供修改/删除。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.lifecycle = LifecycleService()

    def list_buckets(self) -> Dict[str, Any]:
        res = self.client.table("submissions").select("*").order("submitted_at", desc=True).execute()
        submissions = _rows(res)

        article_ids = list({str(s["article_id"]) for s in submissions if s.get("article_id")})
        submitter_ids = list({str(s["submitter_id"]) for s in submissions if s.get("submitter_id")})
        articles: Dict[str, Dict[str, Any]] = {}
        profiles: Dict[str, Dict[str, Any]] = {}
        if article_ids:
            a_res = self.client.table("articles").select("*").in_("id", article_ids).execute()
            articles = {str(a["id"]): a for a in _rows(a_res)}
        if submitter_ids:
            p_res = (
                self.client.table("profiles")
                .select("id, full_name, email, affiliation")
                .in_("id", submitter_ids)
                .execute()
            )
            profiles = {str(p["id"]): p for p in _rows(p_res)}

        buckets: Dict[str, List[Dict[str, Any]]] = {b: [] for b in EDITORIAL_BUCKETS}
        for s in submissions:
            bucket = bucket_for(s.get("status"))
            if bucket is None:
                continue
            buckets[bucket].append(
                {
                    **s,
                    "article": articles.get(str(s.get("article_id"))),
                    "submitter": profiles.get(str(s.get("submitter_id"))),
                }
            )
        return {"buckets": buckets, "counts": {b: len(v) for b, v in buckets.items()}}

    def _context(self, submission_id: str) -> tuple[Dict[str, Any], Dict[str, Any]]:
        submission = self.lifecycle.get_submission(submission_id)
        article = self.lifecycle.get_article(str(submission["article_id"]))
        return submission, article

    def change_status(
        self, session: Session, submission_id: str, to_status: str, comment: Optional[str] = None
    ) -> Dict[str, Any]:
        target = str(to_status)
        action = DECISION_ACTIONS.get(target)
        if action:
            raise HTTPException(
                status_code=400,
                detail=f"'{target}' is a decision status, use the {action} action instead",
            )
        if target not in GENERIC_STATUS_TARGETS:
            raise HTTPException(status_code=400, detail=f"Status '{target}' cannot be set directly")
        submission, article = self._context(submission_id)
        if target in PRODUCTION_STATUSES and submission.get("status") not in PRODUCTION_STATUSES:
            # 生产阶段只能从已接收的稿件进入（接收决策必须已记录）
            raise HTTPException(status_code=400, detail="Only accepted submissions can enter production")
        title = article.get("title") or "Manuscript"
        label = _STATUS_LABELS.get(str(to_status), str(to_status))
        notice = notification_row(
            user_id=str(submission["submitter_id"]),
            title="Submission status updated",
            message=f'"{title}" is now {label}.' + (f" {comment}" if comment else ""),
            email_data={"title": title},
        )
        return self.lifecycle.transition(
            submission_id=submission_id,
            to_status=to_status,
            changed_by=session.user_id,
            allow_skip=session.is_admin,
            comment=comment,
            notifications=[notice],
            current=submission,
        )

    def _decide(
        self,
        session: Session,
        submission_id: str,
        *,
        to_status: str,
        decision_type: str,
        rationale: Optional[str],
        template: str,
        message: str,
        extra_email_data: Optional[Dict[str, Any]] = None,
        revision_request: Optional[Dict[str, Any]] = None,
        submission_updates: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        submission, article = self._context(submission_id)
        title = article.get("title") or "Manuscript"
        notice = notification_row(
            user_id=str(submission["submitter_id"]),
            title="Editorial decision",
            message=message.format(title=title),
            template=template,
            email_data={
                "title": title,
                "decision": decision_type,
                "rationale": rationale,
                **(extra_email_data or {}),
            },
            type="warning" if to_status != SubmissionStatus.ACCEPTED.value else "success",
        )
        return self.lifecycle.transition(
            submission_id=submission_id,
            to_status=to_status,
            changed_by=session.user_id,
            comment=rationale,
            decision={"decision_type": decision_type, "decision_rationale": rationale},
            revision_request=revision_request,
            submission_updates=submission_updates,
            notifications=[notice],
            current=submission,
        )

    def approve(self, session: Session, submission_id: str, rationale: Optional[str] = None) -> Dict[str, Any]:
        return self._decide(
            session,
            submission_id,
            to_status=SubmissionStatus.ACCEPTED.value,
            decision_type="accept",
            rationale=rationale,
            template="decision_made",
            message='Your manuscript "{title}" has been accepted.',
            submission_updates={
                "approved_by": session.user_id,
                "approved_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def reject(self, session: Session, submission_id: str, rationale: str) -> Dict[str, Any]:
        return self._decide(
            session,
            submission_id,
            to_status=SubmissionStatus.REJECTED.value,
            decision_type="reject",
            rationale=rationale,
            template="decision_made",
            message='A decision has been made on "{title}".',
        )

    def desk_reject(self, session: Session, submission_id: str, rationale: str) -> Dict[str, Any]:
        return self._decide(
            session,
            submission_id,
            to_status=SubmissionStatus.DESK_REJECTED.value,
            decision_type="desk_reject",
            rationale=rationale,
            template="desk_rejected",
            message='"{title}" was not sent out for peer review.',
        )

    def request_revision(
        self, session: Session, submission_id: str, payload: RevisionRequestCreate
    ) -> Dict[str, Any]:
        deadline = payload.deadline_date.isoformat()
        return self._decide(
            session,
            submission_id,
            to_status=SubmissionStatus.REVISION_REQUESTED.value,
            decision_type="revision_required",
            rationale=payload.request_details,
            template="revision_requested",
            message='A ' + payload.revision_type + ' revision of "{title}" was requested.',
            extra_email_data={
                "revision_type": payload.revision_type,
                "request_details": payload.request_details,
                "deadline_date": deadline,
            },
            revision_request={
                "revision_type": payload.revision_type,
                "request_details": payload.request_details,
                "deadline_date": deadline,
            },
        )
