"""
请求级会话对象与角色依赖

中文注释:
- 每个请求在组合根（FastAPI 依赖）构造一个只读 Session，
  handler/service 只能读取 current_user / is_editor / is_reviewer / is_admin 四项。
- 角色是“可叠加的能力”，不是互斥身份；管理员天然通过所有角色检查。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Depends, HTTPException

from journaldesk.core.auth_utils import get_current_user
from journaldesk.core.config import get_admin_emails
from journaldesk.lib.api_client import supabase_admin

logger = logging.getLogger("journaldesk.session")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str]
    full_name: Optional[str]


@dataclass(frozen=True)
class Session:
    current_user: CurrentUser
    is_admin: bool = False
    is_editor: bool = False
    is_reviewer: bool = False

    @property
    def user_id(self) -> str:
        return self.current_user.id

    @property
    def can_edit(self) -> bool:
        return self.is_editor or self.is_admin

    @property
    def can_review(self) -> bool:
        return self.is_reviewer or self.is_admin

    @classmethod
    def from_profile(cls, user: dict, profile: dict) -> "Session":
        return cls(
            current_user=CurrentUser(
                id=str(user["id"]),
                email=profile.get("email") or user.get("email"),
                full_name=profile.get("full_name") or user.get("full_name"),
            ),
            is_admin=bool(profile.get("is_admin")),
            is_editor=bool(profile.get("is_editor")),
            is_reviewer=bool(profile.get("is_reviewer")),
        )


def _is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


def load_or_create_profile(user: dict) -> dict[str, Any]:
    """
    获取当前用户的 profile；首次访问时自动创建。

    中文注释:
    1) 新建 profile 只有作者能力（三个 is_* 均为 False）。
    2) 若 email 在 ADMIN_EMAILS 中，则自动补齐 admin/editor/reviewer，便于本地/演示环境初始化。
    """
    user_id = str(user["id"])
    email = user.get("email")
    bootstrap_admin = _is_admin_email(email)

    resp = supabase_admin.table("profiles").select("*").eq("id", user_id).execute()
    existing = (getattr(resp, "data", None) or [None])[0]
    if existing:
        if bootstrap_admin and not (
            existing.get("is_admin") and existing.get("is_editor") and existing.get("is_reviewer")
        ):
            flags = {"is_admin": True, "is_editor": True, "is_reviewer": True}
            supabase_admin.table("profiles").update(flags).eq("id", user_id).execute()
            existing = {**existing, **flags}
        return existing

    row = {
        "id": user_id,
        "email": email,
        "full_name": user.get("full_name"),
        "is_admin": bootstrap_admin,
        "is_editor": bootstrap_admin,
        "is_reviewer": bootstrap_admin,
    }
    inserted = supabase_admin.table("profiles").insert(row).execute()
    return (getattr(inserted, "data", None) or [row])[0]


async def get_session(current_user: dict = Depends(get_current_user)) -> Session:
    try:
        profile = load_or_create_profile(current_user)
    except Exception as e:
        # 最小化降级：profile 读写失败时仍返回“纯作者”会话，避免 UI 完全不可用
        logger.warning("Failed to fetch/create profile for %s: %s", current_user.get("id"), e)
        profile = {"id": current_user["id"], "email": current_user.get("email")}
    return Session.from_profile(current_user, profile)


def require_capability(check: Callable[[Session], bool], label: str) -> Callable[..., Any]:
    async def _dep(session: Session = Depends(get_session)) -> Session:
        if not check(session):
            raise HTTPException(status_code=403, detail=f"{label} privileges required")
        return session

    return _dep


require_editor = require_capability(lambda s: s.can_edit, "Editor")
require_reviewer = require_capability(lambda s: s.can_review, "Reviewer")
require_admin = require_capability(lambda s: s.is_admin, "Admin")
