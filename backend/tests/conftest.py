"""Shared pytest fixtures: a throwaway SQLite database and an in-memory Redis."""

import fnmatch
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio

from feedengine.config import CacheSettings, RoleSettings
from feedengine.models.database import Database, DBArticle, DBEngagement, DBUser
from feedengine.repositories import (
    SqlArticleRepository,
    SqlEngagementRepository,
    SqlUserRepository,
)
from feedengine.services.cache import CacheStore
from feedengine.services.realtime import RealtimePublisher


class FakeRedis:
    """The subset of ``redis.asyncio.Redis`` the engine uses, kept in a dict."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is None:
            self.expiry.pop(key, None)
        else:
            self.expiry[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key not in self.data:
            return False
        self.expiry[key] = seconds
        return True

    async def ttl(self, key):
        if key not in self.data:
            return -2
        return self.expiry.get(key, -1)

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings()


@pytest.fixture
def cache_store(fake_redis, cache_settings) -> CacheStore:
    return CacheStore(fake_redis, cache_settings)


@pytest.fixture
def publisher(fake_redis) -> RealtimePublisher:
    return RealtimePublisher(fake_redis)


@pytest.fixture
def role_settings() -> RoleSettings:
    return RoleSettings()


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'feedengine.db'}")
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
def article_repo(database) -> SqlArticleRepository:
    return SqlArticleRepository(database)


@pytest.fixture
def engagement_repo(database) -> SqlEngagementRepository:
    return SqlEngagementRepository(database)


@pytest.fixture
def user_repo(database) -> SqlUserRepository:
    return SqlUserRepository(database)


@pytest.fixture
def make_article(database):
    """Insert an article row; returns its id. Defaults pass every feed filter."""

    async def _make(**overrides) -> int:
        fields = {
            "title": "An article",
            "url": f"https://example.com/{uuid4().hex}",
            "source_name": "Example",
            "published_at": datetime.utcnow() - timedelta(hours=1),
            "quality_score": 8.0,
            "target_roles_json": [],
            "skill_level": "BEGINNER",
            "tags_json": [],
            "is_clickbait": False,
            "views": 0,
            "saves": 0,
            "shares": 0,
            "is_active": True,
        }
        fields.update(overrides)
        async with database.async_session() as session:
            row = DBArticle(**fields)
            session.add(row)
            await session.commit()
            return row.id

    return _make


@pytest.fixture
def make_user(database):
    """Insert a user row; returns its id."""

    async def _make(user_id: str = "user-1", **overrides) -> str:
        fields = {
            "id": user_id,
            "dynamic_roles_json": [],
            "topics_json": [],
            "skill_level": None,
        }
        fields.update(overrides)
        async with database.async_session() as session:
            session.add(DBUser(**fields))
            await session.commit()
        return user_id

    return _make


@pytest.fixture
def make_engagement(database):
    """Insert a raw engagement row, bypassing the recorder."""

    async def _make(user_id: str, article_id: int, type: str = "VIEW", created_at=None) -> int:
        async with database.async_session() as session:
            row = DBEngagement(
                user_id=user_id,
                article_id=article_id,
                type=type,
                created_at=created_at or datetime.utcnow(),
            )
            session.add(row)
            await session.commit()
            return row.id

    return _make
