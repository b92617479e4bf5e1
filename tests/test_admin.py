import pytest
from conftest import auth_headers, make_user

from chatdesk.core import config
from chatdesk.main import bootstrap_admin
from chatdesk.models.admin_config import HIDDEN_API_KEY
from chatdesk.services.providers import provider_registry

ADMIN = "/api/v1/admin"


@pytest.mark.asyncio
async def test_non_admins_are_forbidden(client, user):
    for method, path in [
        ("GET", "/config"),
        ("GET", "/users"),
        ("POST", f"/users/{user.id}/reset-usage"),
    ]:
        resp = await client.request(method, f"{ADMIN}{path}", headers=auth_headers(user))
        assert resp.status_code == 403


@pytest.mark.asyncio
async def test_config_defaults_when_nothing_saved(client, admin):
    resp = await client.get(f"{ADMIN}/config", headers=auth_headers(admin))

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] is None
    assert body["api_key"] == ""
    assert body["is_active"] is False
    assert body["default_token_quota"] == config.settings.DEFAULT_TOKEN_QUOTA


@pytest.mark.asyncio
async def test_saved_config_hides_key_and_replaces_previous(client, db, admin):
    payload = {"api_provider": "deepseek", "api_key": "sk-first", "model_name": "deepseek-chat"}
    first = (await client.post(f"{ADMIN}/config", json=payload, headers=auth_headers(admin))).json()
    second = (
        await client.post(
            f"{ADMIN}/config",
            json={**payload, "api_key": "sk-second", "default_token_quota": 500},
            headers=auth_headers(admin),
        )
    ).json()

    assert first["api_key"] == HIDDEN_API_KEY
    assert second["is_active"] is True

    active = await db.get_active_admin_config()
    assert active.id == second["id"]
    assert active.api_key == "sk-second"

    shown = (await client.get(f"{ADMIN}/config", headers=auth_headers(admin))).json()
    assert shown["api_key"] == HIDDEN_API_KEY
    assert shown["default_token_quota"] == 500

    chain = provider_registry.build_chain(active)
    assert chain.providers[0].name == "deepseek"
    assert chain.providers[0].api_key == "sk-second"


@pytest.mark.asyncio
async def test_config_validation(client, admin):
    bad_provider = {"api_provider": "mystery", "api_key": "k"}
    custom_without_endpoint = {"api_provider": "custom", "api_key": "k"}
    negative_quota = {"api_key": "k", "default_token_quota": -1}

    for body in (bad_provider, custom_without_endpoint, negative_quota):
        resp = await client.post(f"{ADMIN}/config", json=body, headers=auth_headers(admin))
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_users(client, user, admin):
    resp = await client.get(f"{ADMIN}/users", headers=auth_headers(admin))

    emails = {u["email"] for u in resp.json()}
    assert emails == {user.email, admin.email}
    assert all("password_hash" not in u for u in resp.json())


@pytest.mark.asyncio
async def test_deactivate_and_reactivate_user(client, db, user, admin):
    resp = await client.patch(f"{ADMIN}/users/{user.id}/status", json={"isActive": False}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert (await client.get("/api/v1/conversations", headers=auth_headers(user))).status_code == 401

    await client.patch(f"{ADMIN}/users/{user.id}/status", json={"isActive": True}, headers=auth_headers(admin))
    assert (await db.get_user(user.id)).is_active


@pytest.mark.asyncio
async def test_status_must_be_boolean(client, user, admin):
    resp = await client.patch(f"{ADMIN}/users/{user.id}/status", json={"isActive": "no"}, headers=auth_headers(admin))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_update_quota(client, user, admin):
    resp = await client.patch(f"{ADMIN}/users/{user.id}/quota", json={"tokenQuota": 42}, headers=auth_headers(admin))
    assert resp.json()["token_quota"] == 42

    for bad in (-1, 1.5, "10"):
        resp = await client.patch(f"{ADMIN}/users/{user.id}/quota", json={"tokenQuota": bad}, headers=auth_headers(admin))
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_reset_usage(client, db, admin):
    user = await make_user("heavy@example.com", token_quota=100, token_used=100)

    resp = await client.post(f"{ADMIN}/users/{user.id}/reset-usage", headers=auth_headers(admin))

    assert resp.json()["token_used"] == 0
    assert (await db.get_user(user.id)).token_used == 0


@pytest.mark.asyncio
async def test_unknown_user_is_404(client, admin):
    resp = await client.patch(f"{ADMIN}/users/missing/quota", json={"tokenQuota": 1}, headers=auth_headers(admin))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_bootstrap_admin_creates_then_promotes(db, monkeypatch):
    monkeypatch.setattr(config.settings, "ADMIN_EMAIL", "root@example.com")
    monkeypatch.setattr(config.settings, "ADMIN_PASSWORD", "RootPass123")

    await bootstrap_admin()
    created = await db.get_user_by_email("root@example.com")
    assert created.is_admin and created.is_active and created.email_verified
    assert created.token_quota == 100000

    await db.update_user(created.id, is_admin=False, is_active=False)
    await bootstrap_admin()
    promoted = await db.get_user(created.id)
    assert promoted.is_admin and promoted.is_active
