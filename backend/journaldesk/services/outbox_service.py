from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from journaldesk.core.config import OutboxConfig
from journaldesk.core.mail import EMAIL_SUBJECTS
from journaldesk.lib.api_client import supabase_admin
from journaldesk.models.notification import NotificationRequest

logger = logging.getLogger("journaldesk.outbox")


def notification_row(
    *,
    user_id: str,
    title: str,
    message: str,
    template: Optional[str] = None,
    email_data: Optional[Dict[str, Any]] = None,
    type: str = "info",
    email: bool = True,
) -> Dict[str, Any]:
    """
    构造一条 outbox 行（jsonb 形式，直接作为存储过程 p_notifications 的元素）。

    中文注释:
    - template 为空时若 email=True，则回退 generic 模板（正文即 message）。
    - email_data 会与 title/message 合并，模板可以直接引用 {{ title }} / {{ message }}。
    """
    if email and template is None:
        template = "generic"
    if template is not None and template not in EMAIL_SUBJECTS:
        raise ValueError(f"Unknown email template: {template}")
    data = {"subject": title, "message": message, **(email_data or {})}
    return {
        "user_id": str(user_id),
        "title": title,
        "message": message,
        "type": type,
        "email_notification": bool(email),
        "email_template": template,
        "email_data": data,
        "max_attempts": OutboxConfig.from_env().max_attempts,
    }


class OutboxService:
    """
    通知 Outbox 写入

    中文注释:
    - 生命周期动作的通知由存储过程在同一事务内写入；
    - 这里只负责“独立通知”（POST /notifications/send、角色审批等）与辅助查询。
    """

    def __init__(self) -> None:
        self.client = supabase_admin

    def enqueue_rows(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        payload = [dict(r) for r in rows]
        if not payload:
            return []
        res = self.client.table("notification_outbox").insert(payload).execute()
        inserted = getattr(res, "data", None) or []
        logger.info("Enqueued %s notification(s)", len(inserted))
        return inserted

    def enqueue(self, request: NotificationRequest) -> Dict[str, Any]:
        template = request.email_template
        if request.email_notification and not template:
            template = "generic"
        row = notification_row(
            user_id=str(request.user_id),
            title=request.title,
            message=request.message,
            template=template,
            email_data=request.email_data,
            type=request.type,
            email=request.email_notification,
        )
        inserted = self.enqueue_rows([row])
        return inserted[0] if inserted else row

    def admin_ids(self) -> List[str]:
        res = self.client.table("profiles").select("id").eq("is_admin", True).execute()
        return [str(r["id"]) for r in (getattr(res, "data", None) or []) if r.get("id")]

    def handling_editor_ids(self, submission_id: str) -> List[str]:
        """
        处理该稿件的编辑：在 editorial_decisions 中留下过记录的编辑；没有则回退到全部管理员。
        """
        res = (
            self.client.table("editorial_decisions")
            .select("editor_id, decision_type")
            .eq("submission_id", submission_id)
            .execute()
        )
        ids: List[str] = []
        for row in getattr(res, "data", None) or []:
            if row.get("decision_type") == "revision_submitted":
                continue
            editor_id = row.get("editor_id")
            if editor_id and str(editor_id) not in ids:
                ids.append(str(editor_id))
        return ids or self.admin_ids()
