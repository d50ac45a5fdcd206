from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

RequestableRole = Literal["editor", "reviewer"]


class ProfileUpdate(BaseModel):
    """
    用户可自行修改的 profile 字段

    中文注释: is_editor / is_reviewer / is_admin 不在此列；用户只能通过 request_* 提交申请。
    """

    full_name: Optional[str] = Field(None, max_length=255)
    affiliation: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=5000)
    orcid: Optional[str] = Field(None, pattern=r"^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$")
    email_notifications_enabled: Optional[bool] = None
    request_editor: Optional[bool] = None
    request_reviewer: Optional[bool] = None


class RoleDecisionRequest(BaseModel):
    role: RequestableRole


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)
    full_name: str = Field(..., min_length=1, max_length=255)


class PasswordResetRequest(BaseModel):
    email: EmailStr
