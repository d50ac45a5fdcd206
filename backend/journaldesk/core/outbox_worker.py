import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from journaldesk.core.config import OutboxConfig
from journaldesk.core.mail import EmailService, get_email_service
from journaldesk.lib.api_client import supabase_admin

logger = logging.getLogger("journaldesk.outbox")

# 失败重试间隔（分钟）：1min, 5min, 30min, 2h
BACKOFF_MINUTES = [1, 5, 30, 120]


def backoff_delay(attempts: int) -> timedelta:
    return timedelta(minutes=BACKOFF_MINUTES[min(max(attempts, 1) - 1, len(BACKOFF_MINUTES) - 1)])


class OutboxWorker:
    """
    通知 Outbox 投递器

    中文注释:
    1) 认领：先查 pending 且到期的行，再用 "status=pending" 条件更新抢占（多实例下只有一个能成功）。
    2) 投递：写站内 notifications；需要邮件且用户未关闭邮件通知时渲染模板发送，并写 email_notifications 日志。
    3) 失败：按 1/5/30/120 分钟退避，attempts 达到 max_attempts 后标记 failed。
    4) 租约：processing 超过 lease_sec 仍未完成的行视为持有者已崩溃，下一轮 run_once 回收。
    """

    def __init__(
        self,
        *,
        config: Optional[OutboxConfig] = None,
        email_service: Optional[EmailService] = None,
    ):
        self.config = config or OutboxConfig.from_env()
        self._email = email_service
        self.client = supabase_admin
        self.worker_id = f"outbox-{uuid.uuid4().hex[:8]}"
        self.running = False

    @property
    def email(self) -> EmailService:
        if self._email is None:
            self._email = get_email_service()
        return self._email

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def start(self) -> None:
        logger.info("Outbox worker %s started", self.worker_id)
        self.running = True
        while self.running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.error("Outbox loop error: %s", e)
            await asyncio.sleep(self.config.poll_interval_sec)

    def stop(self) -> None:
        self.running = False

    def reclaim_stale(self) -> int:
        """
        回收租约过期的 processing 行（认领后进程崩溃，未来得及 mark_sent / handle_failure）。

        中文注释: 认领时已计入一次 attempts；已用尽次数的直接标记 failed，其余放回 pending 立即重试。
        """
        cutoff = self._now() - timedelta(seconds=self.config.lease_sec)
        res = (
            self.client.table("notification_outbox")
            .select("*")
            .eq("status", "processing")
            .lt("locked_at", cutoff.isoformat())
            .limit(self.config.batch_size)
            .execute()
        )
        reclaimed = 0
        for row in getattr(res, "data", None) or []:
            attempts = int(row.get("attempts") or 0)
            max_attempts = int(row.get("max_attempts") or self.config.max_attempts)
            exhausted = attempts >= max_attempts
            update: Dict[str, Any] = {
                "status": "failed" if exhausted else "pending",
                "locked_by": None,
                "locked_at": None,
                "last_error": f"Lease expired while held by {row.get('locked_by')}",
            }
            if not exhausted:
                update["next_attempt_at"] = self._now().isoformat()
            upd = (
                self.client.table("notification_outbox")
                .update(update)
                .eq("id", row["id"])
                .eq("status", "processing")
                .eq("locked_at", row.get("locked_at"))
                .execute()
            )
            if getattr(upd, "data", None):
                reclaimed += 1
                logger.warning(
                    "Outbox event %s: lease held by %s expired, now %s", row["id"], row.get("locked_by"), update["status"]
                )
        return reclaimed

    def run_once(self) -> Dict[str, int]:
        stats = {"reclaimed": self.reclaim_stale(), "claimed": 0, "sent": 0, "retried": 0, "failed": 0}
        now = self._now()
        res = (
            self.client.table("notification_outbox")
            .select("*")
            .eq("status", "pending")
            .lte("next_attempt_at", now.isoformat())
            .order("created_at", desc=False)
            .limit(self.config.batch_size)
            .execute()
        )
        for row in getattr(res, "data", None) or []:
            event = self.claim(row)
            if not event:
                continue
            stats["claimed"] += 1
            try:
                self.deliver(event)
            except Exception as e:
                logger.warning("Outbox event %s failed: %s", event.get("id"), e)
                final = self.handle_failure(event, str(e))
                stats["failed" if final else "retried"] += 1
                continue
            self.mark_sent(event)
            stats["sent"] += 1
        if stats["claimed"] or stats["reclaimed"]:
            logger.info("Outbox run: %s", stats)
        return stats

    def claim(self, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        upd = (
            self.client.table("notification_outbox")
            .update(
                {
                    "status": "processing",
                    "locked_by": self.worker_id,
                    "locked_at": self._now().isoformat(),
                    "attempts": int(row.get("attempts") or 0) + 1,
                }
            )
            .eq("id", row["id"])
            .eq("status", "pending")
            .execute()
        )
        rows = getattr(upd, "data", None) or []
        return rows[0] if rows else None

    def deliver(self, event: Dict[str, Any]) -> None:
        # 站内通知只写一次：重试时 notification_id 已存在则跳过
        if not event.get("notification_id"):
            ins = (
                self.client.table("notifications")
                .insert(
                    {
                        "user_id": event["user_id"],
                        "title": event["title"],
                        "message": event["message"],
                        "type": event.get("type") or "info",
                        "is_read": False,
                    }
                )
                .execute()
            )
            created = (getattr(ins, "data", None) or [{}])[0]
            if created.get("id"):
                self.client.table("notification_outbox").update(
                    {"notification_id": created["id"]}
                ).eq("id", event["id"]).execute()
                event["notification_id"] = created["id"]

        if event.get("email_notification"):
            self._send_email(event)

    def _recipient(self, user_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("profiles")
            .select("id, email, full_name, email_notifications_enabled")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return rows[0] if rows else None

    def _send_email(self, event: Dict[str, Any]) -> None:
        profile = self._recipient(event["user_id"])
        if not profile or not profile.get("email"):
            logger.info("Outbox event %s: recipient has no email, skipping", event.get("id"))
            return
        if profile.get("email_notifications_enabled") is False:
            return

        template = event.get("email_template") or "generic"
        context = {
            "recipient_name": profile.get("full_name"),
            **(event.get("email_data") or {}),
        }
        to_email = profile["email"]

        if not self.email.is_configured():
            # 本地/测试环境没有邮件 provider：只记录日志，不进入重试
            logger.warning("Email provider not configured; skipping %s to %s", template, to_email)
            self._log_email(event, to_email, subject=None, template=template, status="skipped")
            return

        try:
            subject = self.email.send_template_email(
                to_email=to_email, template_name=template, context=context
            )
        except Exception as e:
            self._log_email(event, to_email, subject=None, template=template, status="failed", error=str(e))
            raise
        self._log_email(event, to_email, subject=subject, template=template, status="sent")

    def _log_email(
        self,
        event: Dict[str, Any],
        to_email: str,
        *,
        subject: Optional[str],
        template: str,
        status: str,
        error: Optional[str] = None,
    ) -> None:
        try:
            self.client.table("email_notifications").insert(
                {
                    "recipient_email": to_email,
                    "recipient_id": event["user_id"],
                    "subject": subject or event.get("title"),
                    "notification_type": template,
                    "status": status,
                    "error_message": error,
                }
            ).execute()
        except Exception as e:
            logger.warning("Failed to write email log for %s: %s", to_email, e)

    def mark_sent(self, event: Dict[str, Any]) -> None:
        self.client.table("notification_outbox").update(
            {
                "status": "sent",
                "sent_at": self._now().isoformat(),
                "last_error": None,
                "locked_by": None,
                "locked_at": None,
            }
        ).eq("id", event["id"]).execute()

    def handle_failure(self, event: Dict[str, Any], error_msg: str) -> bool:
        """返回 True 表示已达到上限并标记为 failed"""
        attempts = int(event.get("attempts") or 1)
        max_attempts = int(event.get("max_attempts") or self.config.max_attempts)

        if attempts >= max_attempts:
            self.client.table("notification_outbox").update(
                {
                    "status": "failed",
                    "last_error": error_msg,
                    "locked_by": None,
                    "locked_at": None,
                }
            ).eq("id", event["id"]).execute()
            logger.error("Outbox event %s failed permanently after %s attempts", event["id"], attempts)
            return True

        next_run = self._now() + backoff_delay(attempts)
        self.client.table("notification_outbox").update(
            {
                "status": "pending",
                "next_attempt_at": next_run.isoformat(),
                "last_error": error_msg,
                "locked_by": None,
                "locked_at": None,
            }
        ).eq("id", event["id"]).execute()
        return False


def process_outbox_once() -> Dict[str, int]:
    """BackgroundTasks / cron 入口：失败只记日志，不影响已返回的主请求"""
    try:
        return OutboxWorker().run_once()
    except Exception as e:
        logger.warning("Outbox drain failed (will retry on next trigger): %s", e)
        return {"reclaimed": 0, "claimed": 0, "sent": 0, "retried": 0, "failed": 0}
