import pytest
from fastapi import HTTPException

from journaldesk.core.session import (
    Session,
    get_session,
    load_or_create_profile,
    require_admin,
    require_editor,
    require_reviewer,
)


def test_roles_are_additive_and_admin_implies_all(session_factory):
    editor = session_factory(editor=True)
    admin = session_factory(admin=True)
    author = session_factory()

    assert editor.can_edit and not editor.can_review
    assert admin.can_edit and admin.can_review
    assert not author.can_edit and not author.can_review


def test_from_profile_prefers_profile_values():
    session = Session.from_profile(
        {"id": "u-1", "email": "jwt@example.com", "full_name": None},
        {"email": "profile@example.com", "full_name": "Pat", "is_reviewer": True},
    )
    assert session.user_id == "u-1"
    assert session.current_user.email == "profile@example.com"
    assert session.is_reviewer and not session.is_editor


def test_first_login_creates_author_only_profile(fake_db):
    profile = load_or_create_profile({"id": "u-1", "email": "new@example.com", "full_name": "New"})
    assert profile["is_editor"] is False
    assert fake_db.one("profiles", id="u-1")["email"] == "new@example.com"


def test_admin_emails_bootstrap_all_roles(fake_db, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "Boss@Example.com")
    fake_db.seed("profiles", {"id": "u-2", "email": "boss@example.com"})

    profile = load_or_create_profile({"id": "u-2", "email": "boss@example.com"})

    assert profile["is_admin"] and profile["is_editor"] and profile["is_reviewer"]
    assert fake_db.one("profiles", id="u-2")["is_admin"] is True


@pytest.mark.asyncio
async def test_get_session_degrades_to_author_when_profile_fails(fake_db):
    fake_db.table_failures[("profiles", "select")] = RuntimeError("db down")
    session = await get_session({"id": "u-3", "email": "x@example.com"})
    assert session.user_id == "u-3"
    assert not session.can_edit


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "dep,roles,allowed",
    [
        (require_editor, {"editor": True}, True),
        (require_editor, {"reviewer": True}, False),
        (require_reviewer, {"reviewer": True}, True),
        (require_reviewer, {"admin": True}, True),
        (require_admin, {"editor": True, "reviewer": True}, False),
    ],
)
async def test_role_dependencies(session_factory, dep, roles, allowed):
    session = session_factory(**roles)
    if allowed:
        assert await dep(session) is session
    else:
        with pytest.raises(HTTPException) as exc:
            await dep(session)
        assert exc.value.status_code == 403
