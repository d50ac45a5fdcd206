import re
from datetime import date

import pytest
from fastapi import HTTPException

from journaldesk.core.doi_generator import generate_doi
from journaldesk.models.publication import PublishRequest
from journaldesk.services import publication_service
from journaldesk.services.publication_service import MAX_DOI_ATTEMPTS, PublicationService


def test_generate_doi_format():
    doi = generate_doi(prefix="10.5555/", year=2026)
    assert re.fullmatch(r"10\.5555/journal\.2026\.[a-z0-9]{6}", doi)


def test_generate_doi_defaults_to_current_year():
    assert re.fullmatch(r"10\.1234/journal\.\d{4}\.[a-z0-9]{6}", generate_doi())


def test_unique_doi_retries_on_collision(fake_db, monkeypatch):
    fake_db.seed("articles", {"title": "Old", "doi": "10.1234/journal.2026.aaaaaa"})
    candidates = iter(["10.1234/journal.2026.aaaaaa", "10.1234/journal.2026.bbbbbb"])
    monkeypatch.setattr(publication_service, "generate_doi", lambda prefix: next(candidates))

    assert PublicationService().generate_unique_doi() == "10.1234/journal.2026.bbbbbb"


def test_unique_doi_gives_up(fake_db, monkeypatch):
    fake_db.seed("articles", {"title": "Old", "doi": "10.1234/journal.2026.aaaaaa"})
    calls = []

    def _same(prefix):
        calls.append(prefix)
        return "10.1234/journal.2026.aaaaaa"

    monkeypatch.setattr(publication_service, "generate_doi", _same)
    with pytest.raises(HTTPException) as exc:
        PublicationService().generate_unique_doi()
    assert exc.value.status_code == 503
    assert len(calls) == MAX_DOI_ATTEMPTS


def _accept(fake_db, submitted):
    fake_db.update_rows("submissions", lambda r: r["id"] == submitted.submission_id, {"status": "accepted"})


def test_publish_sets_metadata_and_notifies_submitter(fake_db, people, submitted):
    _accept(fake_db, submitted)
    payload = PublishRequest(doi="10.1234/journal.2026.abc123", volume=4, issue=1, page_start=1, page_end=12)

    result = PublicationService().publish(people.editor, submitted.submission_id, payload)

    article = submitted.article()
    assert result["status"] == "published"
    assert article["status"] == "published"
    assert article["doi"] == "10.1234/journal.2026.abc123"
    assert article["volume"] == 4 and article["page_end"] == 12
    assert article["publication_date"]
    notice = fake_db.one("notification_outbox", email_template="article_published")
    assert notice["user_id"] == people.author.user_id


def test_publish_rejects_doi_owned_by_another_article(fake_db, people, submitted):
    _accept(fake_db, submitted)
    fake_db.seed("articles", {"title": "Other", "doi": "10.1234/journal.2026.taken1"})

    with pytest.raises(HTTPException) as exc:
        PublicationService().publish(
            people.editor, submitted.submission_id, PublishRequest(doi="10.1234/journal.2026.taken1")
        )
    assert exc.value.status_code == 409
    assert submitted.submission()["status"] == "accepted"


def test_publish_requires_publishable_status(fake_db, people, submitted):
    with pytest.raises(HTTPException) as exc:
        PublicationService().publish(people.editor, submitted.submission_id, PublishRequest())
    assert exc.value.status_code == 400


def test_republish_only_updates_metadata(fake_db, people, submitted):
    _accept(fake_db, submitted)
    svc = PublicationService()
    svc.publish(people.editor, submitted.submission_id, PublishRequest(volume=1))
    logs_before = len(fake_db.rows("status_transition_logs"))

    result = svc.publish(people.editor, submitted.submission_id, PublishRequest(volume=2, issue=3))

    assert result["article"]["volume"] == 2
    assert submitted.article()["issue"] == 3
    assert len(fake_db.rows("status_transition_logs")) == logs_before


def test_republish_keeps_doi_and_publication_date(fake_db, people, submitted):
    _accept(fake_db, submitted)
    svc = PublicationService()
    svc.publish(
        people.editor,
        submitted.submission_id,
        PublishRequest(doi="10.1234/journal.2026.abcdef", publication_date=date(2026, 1, 5), page_start=3, page_end=9),
    )

    svc.publish(people.editor, submitted.submission_id, PublishRequest(volume=2))

    article = submitted.article()
    assert article["volume"] == 2
    assert article["doi"] == "10.1234/journal.2026.abcdef"
    assert article["publication_date"] == "2026-01-05"
    assert article["page_start"] == 3 and article["page_end"] == 9


def test_republish_checks_page_range_against_stored_pages(fake_db, people, submitted):
    _accept(fake_db, submitted)
    svc = PublicationService()
    svc.publish(people.editor, submitted.submission_id, PublishRequest(page_start=10, page_end=20))

    with pytest.raises(HTTPException) as exc:
        svc.publish(people.editor, submitted.submission_id, PublishRequest(page_end=5))
    assert exc.value.status_code == 400
    assert submitted.article()["page_end"] == 20


def test_metadata_updates_only_carries_given_fields():
    assert PublishRequest(volume=2).metadata_updates() == {"volume": 2}
    assert PublishRequest(publication_date=date(2026, 2, 1)).metadata_updates() == {"publication_date": "2026-02-01"}
