import logging
import time
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from chatdesk.core.config import settings
from chatdesk.core.security import TOKEN_TYPE_ACCESS, decode_token, extract_bearer_token
from chatdesk.services.redis_cache import redis_cache

logger = logging.getLogger("chatdesk.rate_limit")


class RateLimiter:
    """
    Redis-backed fixed-window rate limiter.

    Identity: user id from a valid access token when present, otherwise client IP.
    Behavior: fail-closed (deny) if Redis is unavailable or errors occur.
    """

    def __init__(self, window_seconds: int, global_limit: int, per_identity_limit: int, fail_closed: bool = True):
        self.window_seconds = window_seconds
        self.global_limit = global_limit
        self.per_identity_limit = per_identity_limit
        self.fail_closed = fail_closed

    def _window_key(self, prefix: str, window_start: int, suffix: str | None = None) -> str:
        if suffix:
            return f"rate:{prefix}:{suffix}:{window_start}"
        return f"rate:{prefix}:{window_start}"

    async def allow(self, identity: str) -> bool:
        """
        Check and increment rate limits for the given identity.
        Returns True if within limits, False if exceeded or if storage errors when fail_closed is True.
        """
        if not redis_cache.is_available or not redis_cache.client:
            logger.error("Rate limiting storage unavailable")
            return not self.fail_closed

        now = int(time.time())
        window_start = (now // self.window_seconds) * self.window_seconds
        ttl = self.window_seconds + 1

        global_key = self._window_key("global", window_start)
        identity_key = self._window_key("user", window_start, identity)

        try:
            pipe = redis_cache.client.pipeline()
            pipe.incr(global_key)
            pipe.expire(global_key, ttl)
            pipe.incr(identity_key)
            pipe.expire(identity_key, ttl)
            results: list[Any] = await pipe.execute()
        except RedisError as e:
            logger.error("Rate limit check failed: %s", e)
            return not self.fail_closed

        global_count, identity_count = results[0], results[2]
        return global_count <= self.global_limit and identity_count <= self.per_identity_limit

    def retry_after(self) -> int:
        """Seconds until the current window ends."""
        remaining = self.window_seconds - (int(time.time()) % self.window_seconds)
        return remaining if remaining > 0 else self.window_seconds


limiter = RateLimiter(
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    global_limit=settings.RATE_LIMIT_GLOBAL_PER_MINUTE,
    per_identity_limit=settings.RATE_LIMIT_PER_USER_PER_MINUTE,
    fail_closed=True,
)


def request_identity(request: Request) -> str:
    """User id from a valid bearer token, else the client IP."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token:
        payload = decode_token(token, TOKEN_TYPE_ACCESS)
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def rate_limit_middleware(request: Request, call_next):
    """
    FastAPI middleware applying global + per-identity rate limiting to all API v1 routes.
    """
    if not settings.ENABLE_RATE_LIMITING or not request.url.path.startswith(settings.API_V1_STR):
        return await call_next(request)

    allowed = await limiter.allow(request_identity(request))
    if not allowed:
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Please retry later."},
            headers={"Retry-After": str(limiter.retry_after())},
        )

    return await call_next(request)
