import pytest
from fastapi import HTTPException

from journaldesk.models.profile import ProfileUpdate
from journaldesk.services.profile_service import ProfileService


def test_update_profile_fields(fake_db, people):
    updated = ProfileService().update(people.author, ProfileUpdate(affiliation="UCT", bio="Researcher"))
    assert updated["affiliation"] == "UCT"
    assert fake_db.one("profiles", id=people.author.user_id)["bio"] == "Researcher"
    assert fake_db.rows("notification_outbox") == []


def test_role_request_notifies_admins(fake_db, people):
    ProfileService().update(people.author, ProfileUpdate(request_reviewer=True))

    profile = fake_db.one("profiles", id=people.author.user_id)
    assert profile["request_reviewer"] is True
    assert profile["is_reviewer"] is False
    notice = fake_db.one("notification_outbox", user_id=people.admin.user_id)
    assert "reviewer" in notice["message"]


def test_request_for_existing_role_is_ignored(fake_db, people):
    ProfileService().update(people.reviewer, ProfileUpdate(request_reviewer=True))
    assert fake_db.one("profiles", id=people.reviewer.user_id)["request_reviewer"] is False
    assert fake_db.rows("notification_outbox") == []


def test_role_request_queue_and_approval(fake_db, people):
    svc = ProfileService()
    svc.update(people.author, ProfileUpdate(request_editor=True))
    queue = svc.list_role_requests()
    assert [p["id"] for p in queue] == [people.author.user_id]

    approved = svc.decide_role_request(user_id=people.author.user_id, role="editor", approve=True)

    assert approved["is_editor"] is True
    assert approved["request_editor"] is False
    assert svc.list_role_requests() == []
    notice = fake_db.one("notification_outbox", email_template="role_request_approved")
    assert notice["user_id"] == people.author.user_id
    assert notice["email_data"]["role"] == "editor"


def test_reject_role_request(fake_db, people):
    svc = ProfileService()
    svc.update(people.author, ProfileUpdate(request_reviewer=True))
    rejected = svc.decide_role_request(user_id=people.author.user_id, role="reviewer", approve=False)
    assert rejected["is_reviewer"] is False
    assert rejected["request_reviewer"] is False
    assert fake_db.one("notification_outbox", email_template="role_request_rejected")


def test_decide_without_pending_request(fake_db, people):
    with pytest.raises(HTTPException) as exc:
        ProfileService().decide_role_request(user_id=people.author.user_id, role="editor", approve=True)
    assert exc.value.status_code == 400
    with pytest.raises(HTTPException) as exc:
        ProfileService().decide_role_request(user_id="nobody", role="editor", approve=True)
    assert exc.value.status_code == 404
