import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    应用环境配置

    中文注释:
    - env: development / staging / production / test
    - staging 与生产使用不同的 Supabase 项目，由部署平台注入 SUPABASE_URL 切换。
    """

    env: str
    is_staging: bool
    supabase_url: str
    supabase_key: str
    frontend_origin: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        frontend_origin = (
            os.environ.get("FRONTEND_ORIGIN") or "http://localhost:5173"
        ).strip().rstrip("/")

        return AppConfig(
            env=env,
            is_staging=env == "staging",
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            frontend_origin=frontend_origin,
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class JournalConfig:
    """
    期刊级别的业务常量

    中文注释:
    - DOI 前缀与期刊名允许按部署覆盖，避免硬编码在 service 中。
    - review_deadline_days: 编辑邀请审稿人时的默认截止天数（前端原先固定为 21 天）。
    """

    title: str
    doi_prefix: str
    review_deadline_days: int
    manuscript_bucket: str
    max_upload_mb: int

    @staticmethod
    def from_env() -> "JournalConfig":
        title = (
            os.environ.get("JOURNAL_TITLE")
            or "International Journal of Social Work and Development Studies"
        ).strip()
        doi_prefix = (os.environ.get("JOURNAL_DOI_PREFIX") or "10.1234").strip().rstrip("/")
        review_deadline_days = max(_env_int("REVIEW_DEADLINE_DAYS", 21), 1)
        manuscript_bucket = (os.environ.get("MANUSCRIPT_BUCKET") or "manuscripts").strip()
        max_upload_mb = max(_env_int("MAX_UPLOAD_MB", 25), 1)

        return JournalConfig(
            title=title,
            doi_prefix=doi_prefix,
            review_deadline_days=review_deadline_days,
            manuscript_bucket=manuscript_bucket,
            max_upload_mb=max_upload_mb,
        )


@dataclass(frozen=True)
class SMTPConfig:
    """
    SMTP 配置（从环境变量读取）

    中文注释:
    1) 该配置只存在于后端进程内，严禁泄露到前端。
    2) 允许在本地/测试环境缺省（此时邮件发送逻辑会优雅降级为“只记录日志”）。
    """

    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_email: str
    use_starttls: bool

    @staticmethod
    def from_env() -> Optional["SMTPConfig"]:
        host = (os.environ.get("SMTP_HOST") or "").strip()
        if not host:
            return None

        port = _env_int("SMTP_PORT", 587)
        user = (os.environ.get("SMTP_USER") or "").strip() or None
        password = (os.environ.get("SMTP_PASSWORD") or "").strip() or None

        from_email = (
            os.environ.get("SMTP_FROM_EMAIL") or user or "noreply@ijsds.org"
        ).strip()

        return SMTPConfig(
            host=host,
            port=port,
            user=user,
            password=password,
            from_email=from_email,
            use_starttls=_env_bool("SMTP_USE_STARTTLS", True),
        )


@dataclass(frozen=True)
class ResendConfig:
    """
    Resend API Configuration (transactional email provider)
    """

    api_key: str
    sender: str

    @staticmethod
    def from_env() -> Optional["ResendConfig"]:
        api_key = (os.environ.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            return None

        sender = (
            os.environ.get("EMAIL_SENDER")
            or "International Journal of Social Work and Development Studies <noreply@ijsds.org>"
        ).strip()

        return ResendConfig(api_key=api_key, sender=sender)


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: str
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip()
        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip()
        try:
            rate = float(raw_rate)
        except ValueError:
            rate = 0.0
        return SentryConfig(
            enabled=_env_bool("SENTRY_ENABLED", bool(dsn)),
            dsn=dsn,
            environment=(os.environ.get("SENTRY_ENVIRONMENT") or app_config.env).strip(),
            traces_sample_rate=min(max(rate, 0.0), 1.0),
        )


@dataclass(frozen=True)
class OrcidConfig:
    """
    ORCID OAuth 跳转配置

    中文注释: 只负责拼接 authorize URL；token 交换由 Supabase Auth provider 完成。
    """

    client_id: str
    redirect_uri: str
    base_url: str

    @staticmethod
    def from_env() -> Optional["OrcidConfig"]:
        client_id = (os.environ.get("ORCID_CLIENT_ID") or "").strip()
        if not client_id:
            return None
        redirect_uri = (
            os.environ.get("ORCID_REDIRECT_URI")
            or f"{app_config.frontend_origin}/auth/orcid/callback"
        ).strip()
        base_url = (os.environ.get("ORCID_BASE_URL") or "https://orcid.org").strip().rstrip("/")
        return OrcidConfig(client_id=client_id, redirect_uri=redirect_uri, base_url=base_url)


@dataclass(frozen=True)
class OutboxConfig:
    """
    通知 Outbox 投递配置

    中文注释:
    - batch_size: 每次 run_once 最多认领的事件数
    - max_attempts: 超过后标记 failed，不再重试
    - poll_interval_sec: lifespan 后台轮询间隔（仅 OUTBOX_WORKER_ENABLED=1 时生效）
    - lease_sec: processing 状态的租约；超时未完成（进程崩溃）的行会被重新放回 pending
    """

    batch_size: int
    max_attempts: int
    poll_interval_sec: int
    worker_enabled: bool
    lease_sec: int = 300

    @staticmethod
    def from_env() -> "OutboxConfig":
        return OutboxConfig(
            batch_size=max(_env_int("OUTBOX_BATCH_SIZE", 20), 1),
            max_attempts=max(_env_int("OUTBOX_MAX_ATTEMPTS", 5), 1),
            poll_interval_sec=max(_env_int("OUTBOX_POLL_INTERVAL_SEC", 15), 1),
            worker_enabled=_env_bool("OUTBOX_WORKER_ENABLED", False),
            lease_sec=max(_env_int("OUTBOX_LEASE_SEC", 300), 1),
        )


def get_admin_api_key() -> Optional[str]:
    """
    内部 Cron 接口鉴权 Key

    中文注释: 仅用于 `/api/v1/internal/cron/*`，避免暴露到公网用户接口。
    """

    raw = os.environ.get("ADMIN_API_KEY")
    return raw.strip() if raw else None


def get_admin_emails() -> set[str]:
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
