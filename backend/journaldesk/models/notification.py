from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

NotificationType = Literal["info", "success", "warning", "error"]


class NotificationRequest(BaseModel):
    """
    通知请求（同时接受 camelCase 与 snake_case 入参）

    中文注释:
    - 既接受 userId/emailTemplate 等 camelCase，也接受 snake_case（populate_by_name）。
    - email_template 为空时若要求发邮件，则使用 generic 模板。
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(..., alias="userId")
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    type: NotificationType = "info"
    email_notification: bool = Field(False, alias="emailNotification")
    email_template: Optional[str] = Field(None, alias="emailTemplate")
    email_data: Dict[str, Any] = Field(default_factory=dict, alias="emailData")

