from __future__ import annotations

from datetime import date
from enum import Enum
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

Recommendation = Literal["accept", "minor_revisions", "major_revisions", "reject"]
ReviewVisibility = Literal["pending", "completed"]


class ReviewState(str, Enum):
    """
    审稿状态机（显式枚举，替代散落各处的 submitted_at 判空）

    - invited -> accepted / declined / completed
    - accepted -> completed
    - declined / completed 为终态
    """

    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"

    @classmethod
    def allowed_next(cls, current: "ReviewState | str") -> set[str]:
        c = cls(current)
        if c == cls.INVITED:
            return {cls.ACCEPTED.value, cls.DECLINED.value, cls.COMPLETED.value}
        if c == cls.ACCEPTED:
            return {cls.COMPLETED.value}
        return set()

    @classmethod
    def can_transition(cls, current: "ReviewState | str", target: "ReviewState | str") -> bool:
        return cls(target).value in cls.allowed_next(current)


def review_state(row: dict) -> ReviewState:
    """
    从 reviews 行推导状态：submitted_at 非空即 completed，否则看 invitation_status。

    中文注释: 历史数据里 invitation_status 可能是 pending/sent 等旧值，统一视为 invited。
    """
    if row.get("submitted_at"):
        return ReviewState.COMPLETED
    raw = str(row.get("invitation_status") or "").strip().lower()
    if raw == ReviewState.ACCEPTED.value:
        return ReviewState.ACCEPTED
    if raw == ReviewState.DECLINED.value:
        return ReviewState.DECLINED
    return ReviewState.INVITED


def review_visibility(row: dict) -> ReviewVisibility:
    return "completed" if row.get("submitted_at") else "pending"


class ReviewerAssignmentRequest(BaseModel):
    reviewer_ids: List[UUID] = Field(..., min_length=1)
    deadline_date: Optional[date] = None

    @field_validator("reviewer_ids")
    @classmethod
    def _dedupe(cls, v: List[UUID]) -> List[UUID]:
        return list(dict.fromkeys(v))


class ReviewResponseRequest(BaseModel):
    accept: bool


class ReviewDraft(BaseModel):
    """保存草稿：字段均可为空，不写 submitted_at"""

    recommendation: Optional[Recommendation] = None
    comments_to_author: Optional[str] = Field(None, max_length=20000)
    comments_to_editor: Optional[str] = Field(None, max_length=20000)


class ReviewSubmit(BaseModel):
    """最终提交：推荐意见与给作者的意见必填（在任何数据库调用之前由 Pydantic 拦截）"""

    recommendation: Recommendation
    comments_to_author: str = Field(..., min_length=1, max_length=20000)
    comments_to_editor: Optional[str] = Field(None, max_length=20000)

    @field_validator("comments_to_author")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comments to author are required")
        return v
