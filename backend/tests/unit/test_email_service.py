from unittest.mock import MagicMock, patch

import pytest

from journaldesk.core.config import JournalConfig, ResendConfig, SMTPConfig
from journaldesk.core.mail import EMAIL_SUBJECTS, EmailService, EmailTemplateError


def _journal() -> JournalConfig:
    return JournalConfig(
        title="Journal of Testing",
        doi_prefix="10.9999",
        review_deadline_days=21,
        manuscript_bucket="manuscripts",
        max_upload_mb=5,
    )


def _smtp_config() -> SMTPConfig:
    return SMTPConfig(
        host="smtp.example.com",
        port=587,
        user="user@example.com",
        password="secret",
        from_email="no-reply@example.com",
        use_starttls=True,
    )


def test_every_template_renders():
    service = EmailService(smtp_config=None, resend_config=None, journal_config=_journal())
    for name in EMAIL_SUBJECTS:
        subject, html = service.render(name, {"title": "Paper", "subject": "Hi", "message": "Body", "role": "editor"})
        assert subject
        assert "Journal of Testing" in html


def test_render_subject_and_body_share_context():
    service = EmailService(smtp_config=None, resend_config=None, journal_config=_journal())
    subject, html = service.render(
        "review_submitted",
        {"title": "Rural Health", "recommendation": "minor_revisions", "reviewer_name": "Rita", "recipient_name": "Eli"},
    )
    assert subject == "Review Completed - Rural Health"
    assert "minor revisions" in html
    assert "Dear Eli" in html


def test_body_is_html_escaped():
    service = EmailService(smtp_config=None, resend_config=None, journal_config=_journal())
    _subject, html = service.render("generic", {"subject": "s", "message": "<script>x</script>"})
    assert "<script>" not in html


def test_unknown_template_raises():
    service = EmailService(smtp_config=None, resend_config=None, journal_config=_journal())
    with pytest.raises(EmailTemplateError):
        service.render("missing", {})


def test_send_email_via_smtp():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None, journal_config=_journal())
    with patch("journaldesk.core.mail.smtplib.SMTP") as smtp:
        server = MagicMock()
        smtp.return_value.__enter__.return_value = server

        service.send_email(to_email="to@example.com", subject="S", html_body="<p>Hello</p>", text_body="Hello")

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user@example.com", "secret")
        server.sendmail.assert_called_once()


def test_smtp_failure_propagates_for_outbox_retry():
    service = EmailService(smtp_config=_smtp_config(), resend_config=None, journal_config=_journal())
    with patch("journaldesk.core.mail.smtplib.SMTP") as smtp:
        server = MagicMock()
        server.sendmail.side_effect = RuntimeError("smtp down")
        smtp.return_value.__enter__.return_value = server
        with pytest.raises(RuntimeError, match="smtp down"):
            service.send_email(to_email="to@example.com", subject="S", html_body="<p>x</p>")


def test_resend_used_when_smtp_missing():
    service = EmailService(
        smtp_config=None,
        resend_config=ResendConfig(api_key="re_test", sender="Journal <noreply@example.com>"),
        journal_config=_journal(),
    )
    with patch("journaldesk.core.mail.resend.Emails.send") as send:
        subject = service.send_template_email(
            to_email="to@example.com", template_name="submission_received", context={"title": "Paper"}
        )
    assert subject == "Submission Received - Paper"
    params = send.call_args.args[0]
    assert params["from"] == "Journal <noreply@example.com>"
    assert params["to"] == ["to@example.com"]


def test_no_provider_raises():
    service = EmailService(smtp_config=None, resend_config=None, journal_config=_journal())
    assert service.is_configured() is False
    with pytest.raises(RuntimeError, match="No email provider"):
        service.send_email(to_email="to@example.com", subject="S", html_body="x")
