import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, Optional

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape
from tenacity import retry, stop_after_attempt, wait_exponential

from journaldesk.core.config import JournalConfig, ResendConfig, SMTPConfig

logger = logging.getLogger("journaldesk.mail")

# 模板名 -> 邮件主题（Jinja 表达式，与正文共享同一份 context）
EMAIL_SUBJECTS: Dict[str, str] = {
    "submission_received": "Submission Received - {{ title }}",
    "admin_new_submission": "New Submission - {{ title }}",
    "review_assigned": "Review Invitation - {{ title }}",
    "review_submitted": "Review Completed - {{ title }}",
    "decision_made": "Editorial Decision - {{ title }}",
    "desk_rejected": "Editorial Decision - {{ title }}",
    "revision_requested": "Revision Requested - {{ title }}",
    "revision_submitted": "Revision Submitted - {{ title }}",
    "article_published": "Article Published - {{ title }}",
    "role_request_approved": "Your {{ role }} request was approved",
    "role_request_rejected": "Your {{ role }} request was not approved",
    "generic": "{{ subject }}",
}


class EmailTemplateError(ValueError):
    pass


class EmailService:
    _SENTINEL = object()

    def __init__(
        self,
        *,
        smtp_config: SMTPConfig | None | object = _SENTINEL,
        resend_config: ResendConfig | None | object = _SENTINEL,
        journal_config: JournalConfig | None = None,
    ):
        # 中文注释:
        # - smtp_config / resend_config 支持依赖注入，方便单测与不同环境切换。
        # - 若调用方显式传 None，则视为禁用该 provider。
        if smtp_config is self._SENTINEL:
            smtp_config = SMTPConfig.from_env()
        if resend_config is self._SENTINEL:
            resend_config = ResendConfig.from_env()

        self.smtp_config: SMTPConfig | None = smtp_config  # type: ignore[assignment]
        self.resend_config: ResendConfig | None = resend_config  # type: ignore[assignment]
        self.journal = journal_config or JournalConfig.from_env()

        if self.resend_config:
            resend.api_key = self.resend_config.api_key

        templates_dir = Path(__file__).resolve().parent / "templates"
        self._jinja = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self._subjects = Environment(autoescape=False)

    def is_configured(self) -> bool:
        return bool(self.smtp_config or self.resend_config)

    def render(self, template_name: str, context: Dict[str, Any]) -> tuple[str, str]:
        """
        渲染 (subject, html)。

        中文注释: 未登记的模板名直接抛 EmailTemplateError（属于调用方 bug，不应重试）。
        """
        subject_src = EMAIL_SUBJECTS.get(template_name)
        if subject_src is None:
            raise EmailTemplateError(f"Unknown email template: {template_name}")
        ctx = {"journal_title": self.journal.title, **context}
        subject = self._subjects.from_string(subject_src).render(**ctx)
        html = self._jinja.get_template(f"{template_name}.html").render(**ctx)
        return subject, html

    def send_email(
        self,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> None:
        """
        发送邮件（同步，失败抛异常，由 outbox 负责重试）。

        中文注释:
        - 优先 SMTP；SMTP 未配置但 Resend 已配置时走 Resend。
        - 两者都未配置时抛 RuntimeError。
        """
        if self.smtp_config:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.smtp_config.from_email
            msg["To"] = to_email

            if text_body:
                msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_config.host, self.smtp_config.port) as server:
                if self.smtp_config.use_starttls:
                    server.starttls()
                if self.smtp_config.user and self.smtp_config.password:
                    server.login(self.smtp_config.user, self.smtp_config.password)
                server.sendmail(self.smtp_config.from_email, [to_email], msg.as_string())
            return

        if self.resend_config:
            self._send_with_retry(to_email, subject, html_body)
            return

        raise RuntimeError("No email provider configured")

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
    def _send_with_retry(self, to_email: str, subject: str, html_content: str):
        params = {
            "from": self.resend_config.sender if self.resend_config else "noreply@ijsds.org",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        return resend.Emails.send(params)

    def send_template_email(
        self,
        *,
        to_email: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> str:
        """渲染并发送，返回实际使用的主题（用于投递日志）"""
        subject, html = self.render(template_name, context)
        self.send_email(to_email=to_email, subject=subject, html_body=html)
        logger.info("Email sent: template=%s to=%s", template_name, to_email)
        return subject


_default_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    global _default_service
    if _default_service is None:
        _default_service = EmailService()
    return _default_service
