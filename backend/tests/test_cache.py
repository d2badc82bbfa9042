"""
Tests for the cache store.

The store is exercised against an in-memory stand-in for Redis, and against
clients that fail or hang to check that every operation degrades to a miss.
"""

import asyncio
import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedengine.config import CacheSettings
from feedengine.services.cache import CacheKeys, CacheStore
from feedengine.services.realtime import RealtimePublisher


class BrokenRedis:
    """Every call fails as if the server went away."""

    def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._fail()

    async def get(self, key):
        self._fail()

    async def set(self, key, value, ex=None):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    def scan_iter(self, match=None, count=None):
        self._fail()

    async def exists(self, *keys):
        self._fail()

    async def incr(self, key):
        self._fail()

    async def expire(self, key, seconds):
        self._fail()

    async def ttl(self, key):
        self._fail()

    async def aclose(self):
        self._fail()


class SlowRedis:
    async def get(self, key):
        await asyncio.sleep(1)
        return '"late"'


class TestCacheKeys:
    """Tests for key builders."""

    def test_key_formats(self):
        assert CacheKeys.user_feed("u1", 0) == "feed:user:u1:page:0"
        assert CacheKeys.user_feed_pattern("u1") == "feed:user:u1:*"
        assert CacheKeys.user_feed_generation("u1") == "feed:gen:u1"
        assert CacheKeys.article(42) == "article:42:data"
        assert CacheKeys.trending(7) == "trending:articles:7days"
        assert CacheKeys.trending_by_role("BACKEND", 7) == "trending:role:BACKEND:7"

    def test_user_pattern_does_not_match_other_users(self):
        pattern = CacheKeys.user_feed_pattern("u1")
        assert fnmatch.fnmatchcase(CacheKeys.user_feed("u1", 3), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.user_feed("u10", 0), pattern)
        assert not fnmatch.fnmatchcase(CacheKeys.user_feed_generation("u1"), pattern)


class TestCacheStore:
    """Tests for cache operations against a healthy store."""

    @pytest.mark.asyncio
    async def test_set_and_get_json(self, cache_store):
        value = {"articles": [1, 2, 3], "has_more": True}

        assert await cache_store.set("k", value, 60) is True
        assert await cache_store.get("k") == value

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self, cache_store):
        assert await cache_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_applies_ttl(self, cache_store, fake_redis):
        await cache_store.set("k", "v", 300)

        assert fake_redis.expiry["k"] == 300
        assert await cache_store.ttl("k") == 300

    @pytest.mark.asyncio
    async def test_ttl_missing_or_persistent_is_minus_one(self, cache_store, fake_redis):
        fake_redis.data["persistent"] = '"v"'

        assert await cache_store.ttl("missing") == -1
        assert await cache_store.ttl("persistent") == -1

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_dropped(self, cache_store, fake_redis):
        fake_redis.data["bad"] = "{not json"

        assert await cache_store.get("bad") is None
        assert "bad" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_stored(self, cache_store, fake_redis):
        circular = []
        circular.append(circular)

        assert await cache_store.set("k", circular, 60) is False
        assert "k" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_delete(self, cache_store):
        await cache_store.set("k", 1, 60)

        assert await cache_store.delete("k") == 1
        assert await cache_store.delete("k") == 0
        assert await cache_store.exists("k") is False

    @pytest.mark.asyncio
    async def test_delete_pattern_only_touches_matches(self, cache_store):
        await cache_store.set("feed:user:u1:page:0", [], 60)
        await cache_store.set("feed:user:u1:page:1", [], 60)
        await cache_store.set("feed:user:u2:page:0", [], 60)

        deleted = await cache_store.delete_pattern("feed:user:u1:*")

        assert deleted == 2
        assert await cache_store.exists("feed:user:u2:page:0") is True

    @pytest.mark.asyncio
    async def test_delete_pattern_no_matches(self, cache_store):
        assert await cache_store.delete_pattern("trending:*") == 0

    @pytest.mark.asyncio
    async def test_increment_and_expire(self, cache_store):
        assert await cache_store.increment("counter") == 1
        assert await cache_store.increment("counter") == 2
        assert await cache_store.expire("counter", 30) is True
        assert await cache_store.ttl("counter") == 30

    @pytest.mark.asyncio
    async def test_invalidate_user_feed_bumps_generation(self, cache_store, cache_settings):
        await cache_store.set(CacheKeys.user_feed("u1", 0), [], 60)
        await cache_store.set(CacheKeys.user_feed("u1", 1), [], 60)
        await cache_store.set(CacheKeys.user_feed("u2", 0), [], 60)
        assert await cache_store.feed_generation("u1") is None

        assert await cache_store.invalidate_user_feed("u1") == 2
        assert await cache_store.invalidate_user_feed("u1") == 0

        assert await cache_store.feed_generation("u1") == 2
        assert await cache_store.feed_generation("u2") is None
        assert await cache_store.ttl(CacheKeys.user_feed_generation("u1")) == cache_settings.feed_generation_ttl
        assert await cache_store.exists(CacheKeys.user_feed("u2", 0)) is True

    @pytest.mark.asyncio
    async def test_expire_missing_key(self, cache_store):
        assert await cache_store.expire("missing", 30) is False

    @pytest.mark.asyncio
    async def test_connect_and_close(self, cache_store, fake_redis):
        assert await cache_store.connect() is True

        await cache_store.close()
        assert fake_redis.closed is True


class TestCacheFailOpen:
    """Tests that store failures never reach the caller."""

    @pytest.fixture
    def broken(self):
        return CacheStore(BrokenRedis(), CacheSettings(connect_attempts=1))

    @pytest.mark.asyncio
    async def test_reads_degrade_to_miss(self, broken):
        assert await broken.get("k") is None
        assert await broken.exists("k") is False
        assert await broken.ttl("k") == -1

    @pytest.mark.asyncio
    async def test_writes_report_failure(self, broken):
        assert await broken.set("k", {"a": 1}, 60) is False
        assert await broken.delete("k") == 0
        assert await broken.delete_pattern("feed:user:u1:*") == 0
        assert await broken.increment("k") == 0
        assert await broken.expire("k", 60) is False
        assert await broken.invalidate_user_feed("u1") == 0
        assert await broken.feed_generation("u1") is None

    @pytest.mark.asyncio
    async def test_connect_reports_unavailable(self, broken):
        assert await broken.connect() is False

    @pytest.mark.asyncio
    async def test_close_swallows_errors(self, broken):
        await broken.close()

    @pytest.mark.asyncio
    async def test_timeout_is_a_miss(self):
        slow = CacheStore(SlowRedis(), CacheSettings(operation_timeout=0.01))

        assert await slow.get("k") is None


class TestRealtimePublisher:
    """Tests for fire-and-forget event publishing."""

    @pytest.mark.asyncio
    async def test_publish(self, publisher, fake_redis):
        assert await publisher.publish("events:test", {"type": "ping"}) is True
        assert fake_redis.published == [("events:test", '{"type": "ping"}')]

    @pytest.mark.asyncio
    async def test_no_client(self):
        assert await RealtimePublisher(None).publish("events:test", {"type": "ping"}) is False

    @pytest.mark.asyncio
    async def test_broker_failure_is_reported(self):
        class BrokenBroker:
            async def publish(self, channel, message):
                raise RedisConnectionError("Connection refused")

        publisher = RealtimePublisher(BrokenBroker())

        assert await publisher.publish("events:test", {"type": "ping"}) is False
