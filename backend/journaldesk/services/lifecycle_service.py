from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException

from journaldesk.lib.api_client import supabase_admin
from journaldesk.lib.db_errors import http_error_from_db
from journaldesk.models.article import SubmissionStatus, normalize_status

logger = logging.getLogger("journaldesk.lifecycle")


class LifecycleService:
    """
    稿件状态流转（唯一写入口）

    中文注释:
    - 状态机规则在 SubmissionStatus.allowed_next 中显性可见，这里先做校验再调用存储过程。
    - 存储过程 transition_submission_status 在一个事务里完成：
      submissions.status（以读到的状态作为乐观锁条件）、articles 镜像（触发器）、
      决策记录、修回请求、transition log、通知 outbox。
    - 任何一步失败整体回滚；并发修改返回 409，不会出现两表状态不一致。
    """

    def __init__(self) -> None:
        self.client = supabase_admin

    def get_submission(self, submission_id: str) -> Dict[str, Any]:
        res = (
            self.client.table("submissions")
            .select("*")
            .eq("id", submission_id)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        if not rows:
            raise HTTPException(status_code=404, detail="Submission not found")
        return rows[0]

    def get_article(self, article_id: str) -> Dict[str, Any]:
        res = self.client.table("articles").select("*").eq("id", article_id).limit(1).execute()
        rows = getattr(res, "data", None) or []
        if not rows:
            raise HTTPException(status_code=404, detail="Article not found")
        return rows[0]

    def check_transition(self, from_status: str, to_status: str, *, allow_skip: bool = False) -> str:
        to_norm = normalize_status(to_status)
        if to_norm is None:
            raise HTTPException(status_code=422, detail="Invalid status")
        from_norm = normalize_status(from_status)
        if from_norm is None:
            raise HTTPException(status_code=400, detail=f"Unknown current status: {from_status}")
        if from_norm == to_norm:
            raise HTTPException(status_code=400, detail=f"Submission is already {to_norm}")

        if allow_skip:
            # 管理员可以跳过中间阶段，但不能把终态重新打开
            if from_norm in SubmissionStatus.terminal():
                raise HTTPException(status_code=400, detail=f"{from_norm} is a terminal status")
            return to_norm

        allowed = SubmissionStatus.allowed_next(from_norm)
        if to_norm not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid transition: {from_norm} -> {to_norm}. Allowed: {sorted(allowed)}",
            )
        return to_norm

    def transition(
        self,
        *,
        submission_id: str,
        to_status: str,
        changed_by: str,
        allow_skip: bool = False,
        comment: Optional[str] = None,
        decision: Optional[Dict[str, Any]] = None,
        revision_request: Optional[Dict[str, Any]] = None,
        submission_updates: Optional[Dict[str, Any]] = None,
        article_updates: Optional[Dict[str, Any]] = None,
        notifications: Iterable[Dict[str, Any]] = (),
        current: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        校验并执行一次状态流转，返回更新后的 submissions 行。

        current: 调用方已读取的 submissions 行（其 status 即乐观锁的 expected 值）。
        """
        submission = current or self.get_submission(submission_id)
        from_status = str(submission.get("status") or "")
        to_norm = self.check_transition(from_status, to_status, allow_skip=allow_skip)

        params = {
            "p_submission_id": submission_id,
            "p_expected_status": from_status,
            "p_to_status": to_norm,
            "p_changed_by": changed_by,
            "p_comment": comment,
            "p_decision": decision,
            "p_revision_request": revision_request,
            "p_submission_updates": submission_updates,
            "p_article_updates": article_updates,
            "p_notifications": list(notifications),
        }
        try:
            res = self.client.rpc("transition_submission_status", params).execute()
        except Exception as e:
            raise http_error_from_db(
                e,
                action="Status transition",
                not_found="Submission not found",
                conflict="Submission status was changed by someone else, reload and try again",
            ) from e

        row = getattr(res, "data", None) or {}
        if isinstance(row, list):
            row = row[0] if row else {}
        logger.info(
            "Submission %s: %s -> %s by %s", submission_id, from_status, to_norm, changed_by
        )
        return row or {**submission, "status": to_norm}
