"""
SQLAlchemy implementations of the repository interfaces.
"""
from datetime import datetime
from typing import Any, Optional, Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError

from feedengine.models.database import Database, DBArticle, DBEngagement, DBUser
from feedengine.models.domain import (
    Article,
    EngagementEvent,
    EngagementType,
    EngagementWithArticle,
    RoleWeight,
    SkillLevel,
    User,
)
from feedengine.repositories.base import (
    ArticleQuery,
    ArticleRepository,
    EngagementRepository,
    UserRepository,
)

logger = structlog.get_logger(__name__)

COUNTERS = ("views", "saves", "shares")


# =============================================================================
# Row conversion
# =============================================================================

def _parse_roles(raw: Any) -> list[RoleWeight]:
    """Parse stored [{role, weight}] JSON, dropping malformed entries."""
    roles = []
    for item in raw or []:
        try:
            roles.append(RoleWeight.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed role entry", entry=item)
    return roles


def _parse_skill(raw: Optional[str], default: Optional[SkillLevel]) -> Optional[SkillLevel]:
    try:
        return SkillLevel(raw) if raw else default
    except ValueError:
        return default


def _dump_roles(roles: list[RoleWeight]) -> list[dict]:
    return [r.model_dump() for r in roles]


def article_to_domain(row: DBArticle) -> Article:
    """Convert database model to domain model."""
    return Article(
        id=row.id,
        title=row.title,
        description=row.description or "",
        url=row.url,
        source_name=row.source_name,
        published_at=row.published_at,
        quality_score=min(max(row.quality_score or 0.0, 0.0), 10.0),
        target_roles=_parse_roles(row.target_roles_json),
        skill_level=_parse_skill(row.skill_level, SkillLevel.BEGINNER),
        tags=[t for t in (row.tags_json or []) if isinstance(t, str)],
        is_clickbait=bool(row.is_clickbait),
        scored_at=row.scored_at,
        views=max(row.views or 0, 0),
        saves=max(row.saves or 0, 0),
        shares=max(row.shares or 0, 0),
        is_active=bool(row.is_active),
    )


def engagement_to_domain(row: DBEngagement) -> EngagementEvent:
    return EngagementEvent(
        id=row.id,
        user_id=row.user_id,
        article_id=row.article_id,
        type=EngagementType(row.type),
        created_at=row.created_at,
        updated_at=row.updated_at,
        article_roles=list(row.article_roles_json or []),
        article_tags=list(row.article_tags_json or []),
        article_skill_level=_parse_skill(row.article_skill_level, None),
    )


def user_to_domain(row: DBUser) -> User:
    return User(
        id=row.id,
        dynamic_roles=_parse_roles(row.dynamic_roles_json),
        topics=[t for t in (row.topics_json or []) if isinstance(t, str)],
        skill_level=_parse_skill(row.skill_level, None),
        roles_updated_at=row.roles_updated_at,
        last_active_at=row.last_active_at,
    )


# =============================================================================
# Articles
# =============================================================================

class SqlArticleRepository(ArticleRepository):
    """Article corpus backed by the ``articles`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, article_id: int) -> Optional[Article]:
        async with self.database.async_session() as session:
            row = await session.get(DBArticle, article_id)
            return article_to_domain(row) if row else None

    async def query_feed_candidates(self, query: ArticleQuery) -> list[Article]:
        stmt = select(DBArticle).where(DBArticle.quality_score >= query.min_quality)

        if query.active_only:
            stmt = stmt.where(DBArticle.is_active.is_(True))
        if query.exclude_clickbait:
            stmt = stmt.where(DBArticle.is_clickbait.is_(False))
        if query.cursor is not None:
            stmt = stmt.where(DBArticle.id < query.cursor)
        if query.skill_levels:
            stmt = stmt.where(DBArticle.skill_level.in_([s.value for s in query.skill_levels]))

        stmt = stmt.order_by(
            DBArticle.published_at.desc(),
            DBArticle.quality_score.desc(),
        ).limit(query.limit)

        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            return [article_to_domain(row) for row in result.scalars().all()]

    async def query_articles_in_window(
        self,
        since: datetime,
        min_quality: float,
        role: Optional[str] = None,
    ) -> list[Article]:
        stmt = (
            select(DBArticle)
            .where(DBArticle.published_at >= since)
            .where(DBArticle.is_active.is_(True))
            .where(DBArticle.quality_score >= min_quality)
        )

        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            articles = [article_to_domain(row) for row in result.scalars().all()]

        # Role lives inside a JSON column; filter portably in-process
        if role is not None:
            articles = [a for a in articles if any(r.role == role for r in a.target_roles)]
        return articles

    async def query_latest(self, limit: int) -> list[Article]:
        stmt = (
            select(DBArticle)
            .where(DBArticle.is_active.is_(True))
            .order_by(DBArticle.published_at.desc())
            .limit(limit)
        )
        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            return [article_to_domain(row) for row in result.scalars().all()]

    async def increment_counter(self, article_id: int, counter: str, amount: int = 1) -> bool:
        if counter not in COUNTERS:
            raise ValueError(f"Unknown counter: {counter}")

        column = getattr(DBArticle, counter)
        new_value = case((column + amount < 0, 0), else_=column + amount)

        async with self.database.async_session() as session:
            result = await session.execute(
                update(DBArticle)
                .where(DBArticle.id == article_id)
                .values({counter: new_value})
            )
            await session.commit()
            return result.rowcount > 0


# =============================================================================
# Engagement
# =============================================================================

class SqlEngagementRepository(EngagementRepository):
    """Engagement log backed by the ``engagements`` table."""

    def __init__(self, database: Database):
        self.database = database

    def _to_row(self, event: EngagementEvent) -> DBEngagement:
        return DBEngagement(
            user_id=event.user_id,
            article_id=event.article_id,
            type=event.type.value,
            article_roles_json=list(event.article_roles),
            article_tags_json=list(event.article_tags),
            article_skill_level=event.article_skill_level.value if event.article_skill_level else None,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )

    async def _touch_view(self, event: EngagementEvent) -> Optional[EngagementEvent]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBEngagement)
                .where(DBEngagement.user_id == event.user_id)
                .where(DBEngagement.article_id == event.article_id)
                .where(DBEngagement.type == EngagementType.VIEW.value)
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                return None

            existing.updated_at = event.updated_at or datetime.utcnow()
            await session.commit()
            return engagement_to_domain(existing)

    async def upsert_view(self, event: EngagementEvent) -> EngagementEvent:
        touched = await self._touch_view(event)
        if touched:
            return touched

        try:
            return await self.append(event)
        except IntegrityError:
            # A concurrent first view won the insert
            touched = await self._touch_view(event)
            if touched is None:
                raise
            return touched

    async def append(self, event: EngagementEvent) -> EngagementEvent:
        row = self._to_row(event)
        async with self.database.async_session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return engagement_to_domain(row)

    async def query_engagements_with_article_join(
        self,
        user_id: str,
        since: datetime,
        types: Optional[Sequence[EngagementType]] = None,
    ) -> list[EngagementWithArticle]:
        stmt = (
            select(DBEngagement, DBArticle)
            .join(DBArticle, DBArticle.id == DBEngagement.article_id)
            .where(DBEngagement.user_id == user_id)
            .where(DBEngagement.created_at >= since)
        )
        if types:
            stmt = stmt.where(DBEngagement.type.in_([t.value for t in types]))

        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            return [
                EngagementWithArticle(
                    engagement=engagement_to_domain(eng),
                    article=article_to_domain(art),
                )
                for eng, art in result.all()
            ]

    async def active_user_ids(self, since: datetime) -> list[str]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBEngagement.user_id)
                .where(DBEngagement.created_at >= since)
                .distinct()
            )
            return [row[0] for row in result.all()]

    async def count_for_user(
        self,
        user_id: str,
        since: datetime,
        engagement_type: Optional[EngagementType] = None,
    ) -> int:
        stmt = select(func.count(DBEngagement.id)).where(
            and_(DBEngagement.user_id == user_id, DBEngagement.created_at >= since)
        )
        if engagement_type is not None:
            stmt = stmt.where(DBEngagement.type == engagement_type.value)

        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def list_for_user(
        self,
        user_id: str,
        article_id: Optional[int] = None,
        engagement_type: Optional[EngagementType] = None,
    ) -> list[EngagementEvent]:
        stmt = select(DBEngagement).where(DBEngagement.user_id == user_id)
        if article_id is not None:
            stmt = stmt.where(DBEngagement.article_id == article_id)
        if engagement_type is not None:
            stmt = stmt.where(DBEngagement.type == engagement_type.value)

        async with self.database.async_session() as session:
            result = await session.execute(stmt.order_by(DBEngagement.id))
            return [engagement_to_domain(row) for row in result.scalars().all()]

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(
                delete(DBEngagement).where(DBEngagement.created_at < cutoff)
            )
            await session.commit()
            return result.rowcount or 0


# =============================================================================
# Users
# =============================================================================

class SqlUserRepository(UserRepository):
    """User store backed by the ``users`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, user_id: str) -> Optional[User]:
        async with self.database.async_session() as session:
            row = await session.get(DBUser, user_id)
            return user_to_domain(row) if row else None

    async def save_roles(
        self,
        user_id: str,
        roles: list[RoleWeight],
        updated_at: datetime,
    ) -> None:
        async with self.database.async_session() as session:
            await session.execute(
                update(DBUser)
                .where(DBUser.id == user_id)
                .values(
                    dynamic_roles_json=_dump_roles(roles),
                    roles_updated_at=updated_at,
                    last_active_at=updated_at,
                )
            )
            await session.commit()
