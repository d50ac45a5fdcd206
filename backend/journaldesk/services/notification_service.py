from typing import Any, Dict, List, Optional

from journaldesk.lib.api_client import supabase_admin


class NotificationService:
    """
    站内通知读取

    中文注释: 写入统一经由 outbox（OutboxWorker 负责落 notifications 表），这里只读/标记已读，
    所有查询都带 user_id 条件，用户只能操作自己的通知。
    """

    def list_for_user(self, *, user_id: str, limit: int = 20, unread_only: bool = False) -> List[Dict[str, Any]]:
        q = supabase_admin.table("notifications").select("*").eq("user_id", user_id)
        if unread_only:
            q = q.eq("is_read", False)
        res = q.order("created_at", desc=True).limit(limit).execute()
        return getattr(res, "data", None) or []

    def mark_read(self, *, user_id: str, notification_id: str) -> Optional[Dict[str, Any]]:
        res = (
            supabase_admin.table("notifications")
            .update({"is_read": True})
            .eq("id", notification_id)
            .eq("user_id", user_id)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return rows[0] if rows else None
