"""
Cache store - a fail-open JSON cache over Redis.

Key format is ``namespace:object:id:param``. Nothing in the cache is
authoritative: every value can be recomputed from the article, engagement
and user stores, so any failure here (connection refused, timeout, garbage
payload) is logged and reported to the caller as a miss.
"""
import asyncio
import json
from typing import Any, Awaitable, Optional, TypeVar

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feedengine.config import CacheSettings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


# =============================================================================
# Keys
# =============================================================================

class CacheKeys:
    """Cache key builders (namespace:object:id:param)."""

    @staticmethod
    def user_feed(user_id: str, page: int) -> str:
        return f"feed:user:{user_id}:page:{page}"

    @staticmethod
    def user_feed_pattern(user_id: str) -> str:
        return f"feed:user:{user_id}:*"

    @staticmethod
    def user_feed_generation(user_id: str) -> str:
        # Outside user_feed_pattern so pattern deletes never reset it
        return f"feed:gen:{user_id}"

    @staticmethod
    def article(article_id: int) -> str:
        return f"article:{article_id}:data"

    @staticmethod
    def trending(days: int) -> str:
        return f"trending:articles:{days}days"

    @staticmethod
    def trending_by_role(role: str, days: int) -> str:
        return f"trending:role:{role}:{days}"

    TRENDING_PATTERN = "trending:*"


# =============================================================================
# Store
# =============================================================================

class CacheStore:
    """
    JSON cache with TTLs, pattern delete and atomic counters.

    The Redis client is created by the process entry point and injected
    here; ``connect``/``close`` are called by whoever owns the lifecycle.
    """

    def __init__(self, client: Redis, settings: Optional[CacheSettings] = None):
        self.client = client
        self.settings = settings or CacheSettings()
        self.timeout = self.settings.operation_timeout

    @classmethod
    def from_url(cls, redis_url: str, settings: Optional[CacheSettings] = None) -> "CacheStore":
        """Build a store with its own Redis client."""
        settings = settings or CacheSettings()
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=settings.operation_timeout,
            socket_connect_timeout=settings.operation_timeout,
        )
        return cls(client, settings)

    async def connect(self) -> bool:
        """
        Ping the server with exponential backoff.

        Returns:
            True if the server answered, False if every attempt failed.
            The engine keeps running without a cache either way.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.connect_attempts),
                wait=wait_exponential(multiplier=0.05, max=2),
                retry=retry_if_exception_type(CACHE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    await asyncio.wait_for(self.client.ping(), self.timeout)
        except CACHE_ERRORS as e:
            logger.error("Cache unavailable, continuing without it", error=str(e))
            return False

        logger.info("Cache connected")
        return True

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except CACHE_ERRORS as e:
            logger.warning("Error closing cache connection", error=str(e))

    async def _guard(self, operation: str, key: str, call: Awaitable[T], default: T) -> T:
        """Run a store call with a timeout, degrading to ``default`` on failure."""
        try:
            return await asyncio.wait_for(call, self.timeout)
        except CACHE_ERRORS as e:
            logger.warning(
                "Cache operation failed",
                operation=operation,
                key=key,
                error=str(e) or type(e).__name__,
            )
            return default

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value, or None on miss."""
        data = await self._guard("get", key, self.client.get(key), None)
        if data is None:
            return None

        try:
            return json.loads(data)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry", key=key)
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Set a value with a TTL. Returns False if it was not stored."""
        try:
            data = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Value not serializable, not caching", key=key, error=str(e))
            return False

        result = await self._guard("set", key, self.client.set(key, data, ex=ttl_seconds), None)
        return bool(result)

    async def delete(self, key: str) -> int:
        return await self._guard("delete", key, self.client.delete(key), 0)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern (e.g. ``feed:user:123:*``)."""
        return await self._guard("delete_pattern", pattern, self._delete_pattern(pattern), 0)

    async def _delete_pattern(self, pattern: str) -> int:
        keys = [key async for key in self.client.scan_iter(match=pattern, count=500)]
        if not keys:
            return 0

        deleted = await self.client.delete(*keys)
        logger.debug("Deleted cache keys", pattern=pattern, count=deleted)
        return deleted

    async def exists(self, key: str) -> bool:
        return bool(await self._guard("exists", key, self.client.exists(key), 0))

    async def increment(self, key: str) -> int:
        """Atomically increment a counter, creating it at 1. Returns 0 on failure."""
        return await self._guard("increment", key, self.client.incr(key), 0)

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._guard("expire", key, self.client.expire(key, seconds), False))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds, or -1 if the key is missing or has none."""
        remaining = await self._guard("ttl", key, self.client.ttl(key), -1)
        return remaining if remaining >= 0 else -1

    # -------------------------------------------------------------------------
    # Feed invalidation
    # -------------------------------------------------------------------------

    async def feed_generation(self, user_id: str) -> Optional[int]:
        """Invalidation counter for a user's feed, or None if never bumped or unreachable."""
        value = await self.get(CacheKeys.user_feed_generation(user_id))
        return value if isinstance(value, int) else None

    async def invalidate_user_feed(self, user_id: str) -> int:
        """
        Drop every cached feed page for a user.

        The generation counter is bumped before the delete, so a reader that
        computed its page from older data can detect the invalidation and
        skip or undo its write.
        """
        key = CacheKeys.user_feed_generation(user_id)
        if await self.increment(key):
            await self.expire(key, self.settings.feed_generation_ttl)
        return await self.delete_pattern(CacheKeys.user_feed_pattern(user_id))
