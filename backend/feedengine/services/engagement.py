"""
Engagement recorder - view/save/share events and their cache side effects.

    VIEW    upsert one row per (user, article), bump views, no invalidation
    SAVE    append, bump saves,  drop article + user feed caches
    SHARE   append, bump shares, drop article + user feed caches
    UNSAVE  append, drop saves,  drop article + user feed caches

Views never invalidate the article or feed caches.
"""
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog

from feedengine.models.domain import Article, EngagementEvent, EngagementType
from feedengine.repositories.base import ArticleRepository, EngagementRepository
from feedengine.services.cache import CacheKeys, CacheStore

logger = structlog.get_logger(__name__)

# Called after every recorded engagement (e.g. streaks, milestones)
EngagementHook = Callable[[EngagementEvent], Awaitable[None]]


class ArticleNotFoundError(LookupError):
    """Engagement recorded against an article that does not exist."""

    def __init__(self, article_id: int):
        super().__init__(f"Article {article_id} not found")
        self.article_id = article_id


class EngagementRecorder:
    """Records engagement facts and wires the resulting cache invalidations."""

    def __init__(
        self,
        articles: ArticleRepository,
        engagements: EngagementRepository,
        cache: CacheStore,
        hooks: Optional[list[EngagementHook]] = None,
    ):
        self.articles = articles
        self.engagements = engagements
        self.cache = cache
        self.hooks: list[EngagementHook] = list(hooks or [])

    def add_hook(self, hook: EngagementHook) -> None:
        self.hooks.append(hook)

    async def _load_article(self, article_id: int) -> Article:
        article = await self.articles.get(article_id)
        if article is None:
            raise ArticleNotFoundError(article_id)
        return article

    @staticmethod
    def _event(user_id: str, article: Article, engagement_type: EngagementType) -> EngagementEvent:
        now = datetime.utcnow()
        return EngagementEvent(
            user_id=user_id,
            article_id=article.id,
            type=engagement_type,
            created_at=now,
            updated_at=now,
            article_roles=[r.role for r in article.target_roles],
            article_tags=list(article.tags),
            article_skill_level=article.skill_level,
        )

    async def _run_hooks(self, event: EngagementEvent) -> None:
        for hook in self.hooks:
            try:
                await hook(event)
            except Exception as e:
                logger.error(
                    "Engagement hook failed",
                    hook=getattr(hook, "__name__", repr(hook)),
                    user_id=event.user_id,
                    error=str(e),
                )

    async def _invalidate(self, user_id: str, article_id: int) -> None:
        await self.cache.delete(CacheKeys.article(article_id))
        await self.cache.invalidate_user_feed(user_id)

    async def record_view(self, user_id: str, article_id: int) -> EngagementEvent:
        """
        Record a view.

        Repeated views of the same article keep a single VIEW row (its
        timestamp moves) while the article's view counter counts every call.
        """
        article = await self._load_article(article_id)
        event = await self.engagements.upsert_view(
            self._event(user_id, article, EngagementType.VIEW)
        )
        await self.articles.increment_counter(article_id, "views")

        logger.info("Article viewed", user_id=user_id, article_id=article_id)
        await self._run_hooks(event)
        return event

    async def record_save(self, user_id: str, article_id: int) -> EngagementEvent:
        return await self._record_append(user_id, article_id, EngagementType.SAVE, "saves", 1)

    async def record_share(self, user_id: str, article_id: int) -> EngagementEvent:
        return await self._record_append(user_id, article_id, EngagementType.SHARE, "shares", 1)

    async def record_unsave(self, user_id: str, article_id: int) -> EngagementEvent:
        return await self._record_append(user_id, article_id, EngagementType.UNSAVE, "saves", -1)

    async def _record_append(
        self,
        user_id: str,
        article_id: int,
        engagement_type: EngagementType,
        counter: str,
        amount: int,
    ) -> EngagementEvent:
        article = await self._load_article(article_id)
        event = await self.engagements.append(self._event(user_id, article, engagement_type))
        await self.articles.increment_counter(article_id, counter, amount)
        await self._invalidate(user_id, article_id)

        logger.info(
            "Engagement recorded",
            type=engagement_type.value,
            user_id=user_id,
            article_id=article_id,
        )
        await self._run_hooks(event)
        return event
