"""
Tests for the authentication system.

Tests cover:
- JWT token generation and validation
- Password hashing
- Registration with and without email verification
- Login, refresh and the current user endpoint
- Password reset
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import TEST_PASSWORD, auth_headers, make_user

from chatdesk.core import config
from chatdesk.core.security import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from chatdesk.services.email_service import email_service
from chatdesk.services.redis_cache import redis_cache

AUTH = "/api/v1/auth"

# =============================================================================
# Tokens and hashing
# =============================================================================


class TestTokens:
    def test_access_token_round_trip(self):
        payload = decode_token(create_access_token("user-123", "test@example.com", True), TOKEN_TYPE_ACCESS)

        assert payload["sub"] == "user-123"
        assert payload["email"] == "test@example.com"
        assert payload["is_admin"] is True

    def test_refresh_token_is_not_an_access_token(self):
        token = create_refresh_token("user-123")
        assert decode_token(token, TOKEN_TYPE_REFRESH)["sub"] == "user-123"
        assert decode_token(token, TOKEN_TYPE_ACCESS) is None

    def test_garbage_token_is_rejected(self):
        assert decode_token("invalid-token", TOKEN_TYPE_ACCESS) is None

    def test_token_signed_with_other_key_is_rejected(self, monkeypatch):
        token = create_access_token("user-123", "test@example.com")
        monkeypatch.setattr(config.settings, "JWT_SECRET_KEY", "another-secret-key-another-secret-key")
        assert decode_token(token, TOKEN_TYPE_ACCESS) is None


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("TestPassword123")
        assert hashed != "TestPassword123"
        assert hashed.startswith("$2")
        assert verify_password("TestPassword123", hashed)
        assert not verify_password("WrongPassword", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


# =============================================================================
# Registration
# =============================================================================


REGISTRATION = {
    "email": "New@Example.com",
    "password": "SecurePass123",
    "first_name": "Ada",
    "last_name": "Lovelace",
}


@pytest.mark.asyncio
async def test_register_without_email_activates_immediately(client, db):
    resp = await client.post(f"{AUTH}/register", json=REGISTRATION)

    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "new@example.com"
    assert body["requires_verification"] is False

    user = await db.get_user_by_email("new@example.com")
    assert user.is_active and user.email_verified
    assert user.token_quota == config.settings.DEFAULT_TOKEN_QUOTA
    assert user.token_used == 0


@pytest.mark.asyncio
async def test_register_uses_admin_default_quota(client, db):
    await db.save_admin_config(api_provider="openai", api_key="k", model_name="gpt-4o", default_token_quota=2500)

    await client.post(f"{AUTH}/register", json=REGISTRATION)

    assert (await db.get_user_by_email("new@example.com")).token_quota == 2500


@pytest.mark.asyncio
async def test_register_with_email_requires_verification(client, db, monkeypatch):
    monkeypatch.setattr(config.settings, "SMTP_HOST", "smtp.example.com")
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(email_service, "send_verification_email", send)

    resp = await client.post(f"{AUTH}/register", json=REGISTRATION)

    assert resp.json()["requires_verification"] is True
    user = await db.get_user_by_email("new@example.com")
    assert not user.is_active
    assert user.verification_token
    send.assert_awaited_once_with("new@example.com", "Ada", user.verification_token)

    login = await client.post(f"{AUTH}/login", json={"email": "new@example.com", "password": "SecurePass123"})
    assert login.status_code == 403

    verify = await client.get(f"{AUTH}/verify-email", params={"token": user.verification_token})
    assert verify.status_code == 200

    verified = await db.get_user(user.id)
    assert verified.is_active and verified.email_verified
    assert verified.verification_token is None

    login = await client.post(f"{AUTH}/login", json={"email": "new@example.com", "password": "SecurePass123"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_verify_email_rejects_unknown_token(client):
    resp = await client.get(f"{AUTH}/verify-email", params={"token": "nope"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(client, user):
    resp = await client.post(f"{AUTH}/register", json={**REGISTRATION, "email": user.email})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
async def test_short_password_is_rejected(client):
    resp = await client.post(f"{AUTH}/register", json={**REGISTRATION, "password": "short"})
    assert resp.status_code == 422


# =============================================================================
# Login
# =============================================================================


@pytest.mark.asyncio
async def test_login_returns_tokens_and_profile(client, user):
    resp = await client.post(f"{AUTH}/login", json={"email": user.email, "password": TEST_PASSWORD})

    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == user.id
    assert "password_hash" not in body["user"]

    me = await client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["token_quota"] == user.token_quota


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, user):
    resp = await client.post(f"{AUTH}/login", json={"email": user.email, "password": "WrongPass999"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid email or password"


@pytest.mark.asyncio
async def test_disabled_account_cannot_login(client, db):
    user = await make_user("disabled@example.com", is_active=False)
    resp = await client.post(f"{AUTH}/login", json={"email": user.email, "password": TEST_PASSWORD})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refresh_issues_new_tokens(client, user):
    resp = await client.post(f"{AUTH}/refresh", json={"refresh_token": create_refresh_token(user.id)})
    assert resp.status_code == 200
    assert decode_token(resp.json()["access_token"], TOKEN_TYPE_ACCESS)["sub"] == user.id


@pytest.mark.asyncio
async def test_access_token_cannot_refresh(client, user):
    resp = await client.post(f"{AUTH}/refresh", json={"refresh_token": create_access_token(user.id, user.email)})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_requires_token(client, db):
    assert (await client.get(f"{AUTH}/me")).status_code == 401
    assert (await client.get(f"{AUTH}/me", headers={"Authorization": "Bearer junk"})).status_code == 401


@pytest.mark.asyncio
async def test_logout(client, user):
    resp = await client.post(f"{AUTH}/logout", headers=auth_headers(user))
    assert resp.status_code == 200


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, _ttl, value):
        self.store[key] = value

    async def ttl(self, _key):
        return 600

    async def delete(self, key):
        self.store.pop(key, None)


@pytest.mark.asyncio
async def test_repeated_failures_lock_login(client, user, monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_cache, "client", fake)
    monkeypatch.setattr(redis_cache, "_connected", True)
    monkeypatch.setattr(config.settings, "LOGIN_RATE_LIMIT_ATTEMPTS", 2)

    for _ in range(2):
        resp = await client.post(f"{AUTH}/login", json={"email": user.email, "password": "WrongPass999"})
        assert resp.status_code == 401

    resp = await client.post(f"{AUTH}/login", json={"email": user.email, "password": TEST_PASSWORD})
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "600"
    assert json.loads(fake.store[f"auth:login_attempts:{user.email}"])["attempts"] == 2


# =============================================================================
# Password reset
# =============================================================================


@pytest.mark.asyncio
async def test_password_reset_flow(client, db, user, monkeypatch):
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(email_service, "send_password_reset_email", send)

    resp = await client.post(f"{AUTH}/forgot-password", json={"email": user.email})
    assert resp.status_code == 200

    token = (await db.get_user(user.id)).reset_token
    send.assert_awaited_once_with(user.email, "Test", token)

    resp = await client.post(f"{AUTH}/reset-password", json={"token": token, "password": "BrandNew456"})
    assert resp.status_code == 200

    updated = await db.get_user(user.id)
    assert updated.reset_token is None
    assert verify_password("BrandNew456", updated.password_hash)

    # Tokens are single use
    resp = await client.post(f"{AUTH}/reset-password", json={"token": token, "password": "Another789"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_forgot_password_for_unknown_email_looks_the_same(client, db, user):
    known = await client.post(f"{AUTH}/forgot-password", json={"email": user.email})
    unknown = await client.post(f"{AUTH}/forgot-password", json={"email": "ghost@example.com"})
    assert known.json() == unknown.json()


@pytest.mark.asyncio
async def test_expired_reset_token_is_rejected(client, db, user):
    await db.update_user(user.id, reset_token="abc", reset_token_expiry=datetime.now(UTC) - timedelta(minutes=1))

    resp = await client.post(f"{AUTH}/reset-password", json={"token": "abc", "password": "BrandNew456"})
    assert resp.status_code == 400
