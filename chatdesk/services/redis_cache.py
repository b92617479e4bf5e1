"""
Redis connection shared by the login lockout and the API rate limiter.

Redis is optional: when REDIS_URL is unset or unreachable, is_available is
False and callers degrade (no lockout; rate limiting fails closed).
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chatdesk.core.config import settings

logger = logging.getLogger("chatdesk.redis")


class RedisCache:
    def __init__(self):
        self.client: aioredis.Redis | None = None
        self._connected = False

    @property
    def is_available(self) -> bool:
        """Check if Redis is configured and connected."""
        return self._connected and self.client is not None

    async def connect(self) -> bool:
        """
        Establish connection to Redis.

        Returns:
            True if connection successful, False otherwise.
        """
        if not settings.REDIS_URL:
            logger.info("REDIS_URL not configured - login lockout and rate limiting storage disabled")
            return False

        try:
            self.client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
            await self.client.ping()
            self._connected = True
            logger.info("Connected to Redis at %s", settings.sanitize_url(settings.REDIS_URL))
            return True
        except (RedisError, OSError) as e:
            logger.error("Failed to connect to Redis: %s", e)
            self.client = None
            self._connected = False
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            self.client = None
            self._connected = False
            logger.info("Redis connection closed")


# Global instance
redis_cache = RedisCache()
