import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-0123456789")

import httpx
import pytest
import pytest_asyncio

from chatdesk.core import config
from chatdesk.core.security import create_access_token, hash_password
from chatdesk.main import app
from chatdesk.services.database import database
from chatdesk.services.providers import ProviderAdapter, ProviderChain, ProviderError, provider_registry
from chatdesk.services.redis_cache import redis_cache

TEST_PASSWORD = "SecurePass123"


class FakeProvider(ProviderAdapter):
    """Scripted provider: returns `reply`, or raises ProviderError when `fail` is set."""

    def __init__(self, name: str, reply: str = "Hello from the model", configured: bool = True, fail: bool = False):
        self.name = name
        self.reply = reply
        self.configured = configured
        self.fail = fail
        self.calls: list[tuple[list, bool]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def invoke(self, turns, has_images):
        self.calls.append((list(turns), has_images))
        if self.fail:
            raise ProviderError(f"{self.name} is down")
        return self.reply


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep real credentials and infrastructure out of tests."""
    monkeypatch.setattr(config.settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")
    monkeypatch.setattr(config.settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(config.settings, "REDIS_URL", None)
    monkeypatch.setattr(config.settings, "SMTP_HOST", None)
    monkeypatch.setattr(config.settings, "ENABLE_RATE_LIMITING", False)
    monkeypatch.setattr(config.settings, "ADMIN_EMAIL", None)
    monkeypatch.setattr(config.settings, "ADMIN_PASSWORD", None)
    for key in ("QWEN_API_KEY", "DEEPSEEK_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.setattr(config.settings, key, None)
    provider_registry.reset()

    original_client, original_connected = redis_cache.client, redis_cache._connected
    redis_cache.client, redis_cache._connected = None, False
    yield
    redis_cache.client, redis_cache._connected = original_client, original_connected
    provider_registry.reset()


@pytest_asyncio.fixture
async def db():
    """Fresh SQLite database for one test."""
    assert await database.connect()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fake_provider(monkeypatch):
    """Route every send to a single scripted provider."""
    provider = FakeProvider("fake")
    monkeypatch.setattr(provider_registry, "build_chain", lambda admin_config=None: ProviderChain([provider]))
    return provider


async def make_user(email: str = "user@example.com", **fields):
    fields.setdefault("password_hash", hash_password(TEST_PASSWORD))
    fields.setdefault("first_name", "Test")
    fields.setdefault("last_name", "User")
    fields.setdefault("is_active", True)
    fields.setdefault("email_verified", True)
    return await database.create_user(email, **fields)


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.is_admin)}"}


@pytest_asyncio.fixture
async def user(db):
    return await make_user()


@pytest_asyncio.fixture
async def admin(db):
    return await make_user("admin@example.com", is_admin=True, token_quota=100000)
