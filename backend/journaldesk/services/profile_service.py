from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import HTTPException

from journaldesk.core.session import Session, load_or_create_profile
from journaldesk.lib.api_client import supabase_admin
from journaldesk.models.profile import ProfileUpdate
from journaldesk.services.outbox_service import OutboxService, notification_row

logger = logging.getLogger("journaldesk.profiles")

_ROLE_FLAGS = {
    "editor": ("is_editor", "request_editor"),
    "reviewer": ("is_reviewer", "request_reviewer"),
}


class ProfileService:
    """
    个人资料与角色申请队列

    中文注释:
    - 角色是可叠加的能力：用户只能“申请” editor/reviewer（request_* 标记），
      只有管理员审批后才会设置 is_editor / is_reviewer。
    - 新提交的申请会通知所有管理员；审批结果通知申请人。
    """

    def __init__(self) -> None:
        self.client = supabase_admin
        self.outbox = OutboxService()

    def get(self, session: Session) -> Dict[str, Any]:
        return load_or_create_profile(
            {
                "id": session.user_id,
                "email": session.current_user.email,
                "full_name": session.current_user.full_name,
            }
        )

    def update(self, session: Session, payload: ProfileUpdate) -> Dict[str, Any]:
        current = self.get(session)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            return current
        # 已具备的能力无需再申请
        if updates.get("request_editor") and current.get("is_editor"):
            updates["request_editor"] = False
        if updates.get("request_reviewer") and current.get("is_reviewer"):
            updates["request_reviewer"] = False
        updates["updated_at"] = datetime.now(timezone.utc).isoformat()

        res = self.client.table("profiles").update(updates).eq("id", session.user_id).execute()
        rows = getattr(res, "data", None) or []
        updated = rows[0] if rows else {**current, **updates}

        new_requests = [
            role
            for role, (_flag, req) in _ROLE_FLAGS.items()
            if updates.get(req) and not current.get(req)
        ]
        if new_requests:
            self._notify_admins_of_request(updated, new_requests)
        return updated

    def _notify_admins_of_request(self, profile: Dict[str, Any], roles: List[str]) -> None:
        name = profile.get("full_name") or profile.get("email") or "A user"
        message = f"{name} requested {' and '.join(roles)} access."
        try:
            self.outbox.enqueue_rows(
                notification_row(user_id=admin_id, title="New role request", message=message)
                for admin_id in self.outbox.admin_ids()
            )
        except Exception as e:
            logger.warning("Failed to notify admins of role request from %s: %s", profile.get("id"), e)

    def list_role_requests(self) -> List[Dict[str, Any]]:
        res = (
            self.client.table("profiles")
            .select("id, full_name, email, affiliation, request_editor, request_reviewer, is_editor, is_reviewer")
            .or_("request_editor.eq.true,request_reviewer.eq.true")
            .order("updated_at", desc=True)
            .execute()
        )
        return getattr(res, "data", None) or []

    def decide_role_request(self, *, user_id: str, role: str, approve: bool) -> Dict[str, Any]:
        flag, request_flag = _ROLE_FLAGS[role]
        res = self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        rows = getattr(res, "data", None) or []
        if not rows:
            raise HTTPException(status_code=404, detail="Profile not found")
        if not rows[0].get(request_flag):
            raise HTTPException(status_code=400, detail=f"No pending {role} request for this user")

        updates: Dict[str, Any] = {request_flag: False, "updated_at": datetime.now(timezone.utc).isoformat()}
        if approve:
            updates[flag] = True
        upd = self.client.table("profiles").update(updates).eq("id", user_id).execute()
        updated = (getattr(upd, "data", None) or [{**rows[0], **updates}])[0]

        template = "role_request_approved" if approve else "role_request_rejected"
        verdict = "approved" if approve else "not approved"
        self.outbox.enqueue_rows(
            [
                notification_row(
                    user_id=user_id,
                    title=f"{role.title()} request {verdict}",
                    message=f"Your {role} access request was {verdict}.",
                    template=template,
                    email_data={"role": role},
                    type="success" if approve else "info",
                )
            ]
        )
        logger.info("Role request %s for %s: %s", role, user_id, verdict)
        return updated
