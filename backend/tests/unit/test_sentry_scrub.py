from journaldesk.core.sentry_init import _before_send, _scrub, init_sentry


def test_before_send_filters_request_body_and_sensitive_headers():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer secret", "X-Admin-Key": "k", "X-Test": "ok"},
            "data": {"password": "cleartext"},
            "cookies": {"a": "b"},
        },
        "extra": {"comments_to_editor": "confidential", "submission_id": "s-1"},
    }

    out = _before_send(event, {})

    request = out["request"]
    assert request["data"] == "[Filtered]"
    assert request["cookies"] == "[Filtered]"
    assert request["headers"] == {"X-Test": "ok"}
    assert out["extra"] == {"comments_to_editor": "[Filtered]", "submission_id": "s-1"}


def test_scrub_drops_file_content_and_long_text():
    scrubbed = _scrub({"file": b"%PDF-1.7", "notes": ["x" * 5000, "short"]})
    assert scrubbed == {"file": "[Filtered]", "notes": ["[Filtered]", "short"]}


def test_init_sentry_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    assert init_sentry() is False
