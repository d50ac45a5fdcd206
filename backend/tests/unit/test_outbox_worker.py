from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from journaldesk.core.config import OutboxConfig
from journaldesk.core.outbox_worker import BACKOFF_MINUTES, OutboxWorker, backoff_delay, process_outbox_once
from journaldesk.services.outbox_service import notification_row


def _config(max_attempts: int = 3) -> OutboxConfig:
    return OutboxConfig(batch_size=10, max_attempts=max_attempts, poll_interval_sec=1, worker_enabled=False)


def _email(configured: bool = True, error: Exception | None = None) -> MagicMock:
    email = MagicMock()
    email.is_configured.return_value = configured
    if error is not None:
        email.send_template_email.side_effect = error
    else:
        email.send_template_email.return_value = "Rendered subject"
    return email


def _enqueue(fake_db, user_id: str, **kwargs):
    row = notification_row(user_id=user_id, title="Submission received", message="Thanks", **kwargs)
    return fake_db.seed("notification_outbox", row)[0]


def test_backoff_schedule():
    assert [backoff_delay(n) for n in (1, 2, 3, 4)] == [timedelta(minutes=m) for m in BACKOFF_MINUTES]
    assert backoff_delay(9) == timedelta(minutes=BACKOFF_MINUTES[-1])
    assert backoff_delay(0) == timedelta(minutes=BACKOFF_MINUTES[0])


def test_delivers_in_app_and_email(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id, template="submission_received", email_data={"title": "T"})
    email = _email()

    stats = OutboxWorker(config=_config(), email_service=email).run_once()

    assert stats == {"reclaimed": 0, "claimed": 1, "sent": 1, "retried": 0, "failed": 0}
    notes = fake_db.rows("notifications")
    assert len(notes) == 1 and notes[0]["user_id"] == people.author.user_id
    outbox = fake_db.one("notification_outbox", id=event["id"])
    assert outbox["status"] == "sent"
    assert outbox["notification_id"] == notes[0]["id"]

    kwargs = email.send_template_email.call_args.kwargs
    assert kwargs["to_email"] == "amina@example.com"
    assert kwargs["template_name"] == "submission_received"
    assert kwargs["context"]["recipient_name"] == "Amina Author"
    assert fake_db.one("email_notifications", recipient_id=people.author.user_id)["status"] == "sent"


def test_missing_provider_logs_skipped_without_retry(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)

    stats = OutboxWorker(config=_config(), email_service=_email(configured=False)).run_once()

    assert stats["sent"] == 1
    assert fake_db.one("notification_outbox", id=event["id"])["status"] == "sent"
    assert fake_db.one("email_notifications", recipient_id=people.author.user_id)["status"] == "skipped"


def test_email_opt_out_skips_email_but_keeps_in_app(fake_db, people):
    fake_db.update_rows(
        "profiles", lambda r: r["id"] == people.author.user_id, {"email_notifications_enabled": False}
    )
    _enqueue(fake_db, people.author.user_id)
    email = _email()

    OutboxWorker(config=_config(), email_service=email).run_once()

    email.send_template_email.assert_not_called()
    assert len(fake_db.rows("notifications")) == 1


def test_failure_schedules_retry_and_writes_in_app_once(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    worker = OutboxWorker(config=_config(), email_service=_email(error=RuntimeError("smtp down")))

    stats = worker.run_once()

    assert stats == {"reclaimed": 0, "claimed": 1, "sent": 0, "retried": 1, "failed": 0}
    row = fake_db.one("notification_outbox", id=event["id"])
    assert row["status"] == "pending"
    assert row["attempts"] == 1
    assert row["last_error"] == "smtp down"
    assert row["next_attempt_at"] > datetime.now(timezone.utc).isoformat()
    assert fake_db.one("email_notifications", recipient_id=people.author.user_id)["status"] == "failed"

    # 到期后重试：站内通知不会重复写入
    fake_db.update_rows(
        "notification_outbox",
        lambda r: r["id"] == event["id"],
        {"next_attempt_at": (datetime.now(timezone.utc) - timedelta(seconds=5)).isoformat()},
    )
    worker.run_once()
    assert len(fake_db.rows("notifications")) == 1
    assert fake_db.one("notification_outbox", id=event["id"])["attempts"] == 2


def test_marks_failed_after_max_attempts(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    fake_db.update_rows(
        "notification_outbox", lambda r: r["id"] == event["id"], {"attempts": 2, "max_attempts": 3}
    )

    stats = OutboxWorker(config=_config(), email_service=_email(error=RuntimeError("bounced"))).run_once()

    assert stats["failed"] == 1
    row = fake_db.one("notification_outbox", id=event["id"])
    assert row["status"] == "failed"
    assert row["attempts"] == 3


def test_not_yet_due_rows_are_left_alone(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    later = (datetime.now(timezone.utc) + timedelta(minutes=10)).isoformat()
    fake_db.update_rows("notification_outbox", lambda r: r["id"] == event["id"], {"next_attempt_at": later})

    stats = OutboxWorker(config=_config(), email_service=_email()).run_once()

    assert stats["claimed"] == 0
    assert fake_db.rows("notifications") == []


def test_claim_loses_to_another_worker(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    first = OutboxWorker(config=_config(), email_service=_email())
    second = OutboxWorker(config=_config(), email_service=_email())

    assert first.claim(event) is not None
    assert second.claim(event) is None


def _hold(fake_db, event, *, age: timedelta, attempts: int = 1):
    locked_at = (datetime.now(timezone.utc) - age).isoformat()
    fake_db.update_rows(
        "notification_outbox",
        lambda r: r["id"] == event["id"],
        {"status": "processing", "locked_by": "outbox-crashed", "locked_at": locked_at, "attempts": attempts},
    )


def test_expired_lease_is_reclaimed_and_delivered(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    _hold(fake_db, event, age=timedelta(minutes=10))
    config = OutboxConfig(batch_size=10, max_attempts=3, poll_interval_sec=1, worker_enabled=False, lease_sec=60)

    stats = OutboxWorker(config=config, email_service=_email()).run_once()

    assert stats["reclaimed"] == 1
    assert stats["sent"] == 1
    row = fake_db.one("notification_outbox", id=event["id"])
    assert row["status"] == "sent"
    assert row["attempts"] == 2
    assert len(fake_db.rows("notifications")) == 1


def test_live_lease_is_left_alone(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    _hold(fake_db, event, age=timedelta(seconds=5))
    config = OutboxConfig(batch_size=10, max_attempts=3, poll_interval_sec=1, worker_enabled=False, lease_sec=60)

    stats = OutboxWorker(config=config, email_service=_email()).run_once()

    assert stats["reclaimed"] == 0 and stats["claimed"] == 0
    assert fake_db.one("notification_outbox", id=event["id"])["locked_by"] == "outbox-crashed"


def test_expired_lease_without_attempts_left_fails(fake_db, people):
    event = _enqueue(fake_db, people.author.user_id)
    _hold(fake_db, event, age=timedelta(minutes=10), attempts=3)
    config = OutboxConfig(batch_size=10, max_attempts=3, poll_interval_sec=1, worker_enabled=False, lease_sec=60)

    stats = OutboxWorker(config=config, email_service=_email()).run_once()

    assert stats["reclaimed"] == 1 and stats["claimed"] == 0
    row = fake_db.one("notification_outbox", id=event["id"])
    assert row["status"] == "failed"
    assert row["locked_by"] is None
    assert fake_db.rows("notifications") == []


def test_lease_defaults_from_env(monkeypatch):
    monkeypatch.setenv("OUTBOX_LEASE_SEC", "45")
    assert OutboxConfig.from_env().lease_sec == 45


def test_process_outbox_once_swallows_errors(monkeypatch):
    def _boom(self):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(OutboxWorker, "run_once", _boom)
    assert process_outbox_once() == {"reclaimed": 0, "claimed": 0, "sent": 0, "retried": 0, "failed": 0}


@pytest.mark.asyncio
async def test_worker_loop_stops(fake_db, monkeypatch):
    worker = OutboxWorker(config=_config(), email_service=_email())
    calls = []

    def _run_once():
        calls.append(1)
        worker.stop()
        return {}

    monkeypatch.setattr(worker, "run_once", _run_once)
    await worker.start()
    assert calls == [1]
    assert worker.running is False
