import pytest

from tests.utils.api_client import API_PREFIX


@pytest.mark.asyncio
async def test_users_can_only_request_roles(client, fake_db, login, people):
    login(people.author)

    resp = await client.put(f"{API_PREFIX}/profile", json={"request_editor": True, "is_editor": True})

    assert resp.status_code == 200
    profile = fake_db.one("profiles", id=people.author.user_id)
    assert profile["request_editor"] is True
    assert profile["is_editor"] is False


@pytest.mark.asyncio
async def test_admin_approves_role_request(client, fake_db, login, people):
    login(people.author)
    await client.put(f"{API_PREFIX}/profile", json={"request_reviewer": True})

    login(people.editor)
    assert (await client.get(f"{API_PREFIX}/admin/role-requests")).status_code == 403

    login(people.admin)
    queue = (await client.get(f"{API_PREFIX}/admin/role-requests")).json()["data"]
    assert [p["id"] for p in queue] == [people.author.user_id]

    resp = await client.post(
        f"{API_PREFIX}/admin/role-requests/{people.author.user_id}/approve", json={"role": "reviewer"}
    )
    assert resp.status_code == 200
    assert fake_db.one("profiles", id=people.author.user_id)["is_reviewer"] is True
    assert fake_db.one("notifications", user_id=people.author.user_id)["title"] == "Reviewer request approved"


@pytest.mark.asyncio
async def test_invalid_role_is_422(client, fake_db, login, people):
    login(people.admin)
    resp = await client.post(
        f"{API_PREFIX}/admin/role-requests/{people.author.user_id}/approve", json={"role": "admin"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_invalid_orcid_is_422(client, fake_db, login, people):
    login(people.author)
    resp = await client.put(f"{API_PREFIX}/profile", json={"orcid": "abc"})
    assert resp.status_code == 422
