"""
Feed service - assembles, ranks and caches personalised feeds.

Flow for a signed-in reader:
1. First page only: serve ``feed:user:{id}:page:0`` if cached
2. Query quality candidates (over-fetching ``limit × 3`` for re-ranking)
3. Score each candidate with the relevance scorer, keep the top ``limit``
4. Cache page 0 for the feed TTL, unless the feed was invalidated meanwhile

Anonymous readers get the newest candidates unscored and uncached.

This service does not invalidate anything by itself; writers call
``invalidate_user_feed`` (engagement recorder, role profile updates).
"""
from datetime import datetime
from typing import Optional

import structlog
from pydantic import ValidationError

from feedengine.config import CacheSettings, FeedSettings
from feedengine.models.domain import Article, FeedPage, RankedArticle, SkillLevel, User
from feedengine.repositories.base import ArticleQuery, ArticleRepository
from feedengine.services.cache import CacheKeys, CacheStore
from feedengine.services.recommendations import LatestArticlesStrategy, RecommendationStrategy
from feedengine.services.relevance import RelevanceScorer

logger = structlog.get_logger(__name__)

SKILL_RANGES = {
    SkillLevel.BEGINNER: [SkillLevel.BEGINNER, SkillLevel.INTERMEDIATE],
    SkillLevel.INTERMEDIATE: [SkillLevel.BEGINNER, SkillLevel.INTERMEDIATE, SkillLevel.ADVANCED],
    SkillLevel.ADVANCED: [SkillLevel.INTERMEDIATE, SkillLevel.ADVANCED],
}


class FeedService:
    """Personalised feed assembly and feed cache ownership."""

    def __init__(
        self,
        articles: ArticleRepository,
        cache: CacheStore,
        scorer: Optional[RelevanceScorer] = None,
        strategy: Optional[RecommendationStrategy] = None,
        settings: Optional[FeedSettings] = None,
        cache_settings: Optional[CacheSettings] = None,
    ):
        self.articles = articles
        self.cache = cache
        self.scorer = scorer or RelevanceScorer()
        self.strategy = strategy or LatestArticlesStrategy(articles)
        self.settings = settings or FeedSettings()
        self.cache_settings = cache_settings or CacheSettings()

    @staticmethod
    def get_skill_level_range(level: Optional[SkillLevel]) -> list[SkillLevel]:
        """Preferred level plus its neighbours."""
        if level is None:
            return list(SkillLevel)
        return list(SKILL_RANGES.get(level, list(SkillLevel)))

    async def get_personalized_feed(
        self,
        user: Optional[User],
        limit: Optional[int] = None,
        cursor: Optional[int] = None,
    ) -> FeedPage:
        """
        Get one page of a reader's feed.

        Never raises: store failures are logged and produce an empty page.

        Args:
            user: The reader, or None for anonymous access
            limit: Page size (defaults to settings)
            cursor: Id of the last article on the previous page

        Returns:
            FeedPage with ``has_more`` and ``next_cursor`` filled in
        """
        limit = min(limit or self.settings.default_limit, self.settings.max_limit)

        generation = None
        if user is not None and cursor is None:
            cached = await self._read_cached_page(user.id)
            # A cached page shorter than the request is only usable if it was the whole feed
            if cached is not None and (len(cached.articles) >= limit or not cached.has_more):
                logger.debug("Feed cache hit", user_id=user.id)
                return self._page(cached.articles[:limit], limit)
            generation = await self.cache.feed_generation(user.id)

        query = ArticleQuery(
            min_quality=self.settings.min_quality,
            cursor=cursor,
            skill_levels=(
                self.get_skill_level_range(user.skill_level)
                if user is not None and user.skill_level is not None
                else None
            ),
            limit=limit * self.settings.overfetch_factor,
        )

        try:
            candidates = await self.articles.query_feed_candidates(query)
        except Exception as e:
            logger.error("Feed candidate query failed", user_id=user.id if user else None, error=str(e))
            return FeedPage()

        if user is None:
            ranked = [RankedArticle(article=a) for a in candidates[:limit]]
            return self._page(ranked, limit)

        ranked = self._rank(user, candidates)[:limit]
        page = self._page(ranked, limit)

        if cursor is None:
            await self._store_first_page(user.id, page, generation)
        return page

    async def _store_first_page(self, user_id: str, page: FeedPage, generation: Optional[int]) -> None:
        """
        Cache page 0 unless the feed was invalidated while it was being built.

        Invalidation bumps the generation before deleting, so a change seen
        after the write means the delete may have run first; the write is undone.
        """
        if await self.cache.feed_generation(user_id) != generation:
            logger.debug("Feed invalidated during build, not caching", user_id=user_id)
            return

        key = CacheKeys.user_feed(user_id, 0)
        if not await self.cache.set(key, page.model_dump(mode="json"), self.cache_settings.feed_ttl):
            return

        if await self.cache.feed_generation(user_id) != generation:
            logger.debug("Feed invalidated during write, dropping page", user_id=user_id)
            await self.cache.delete(key)

    def _rank(self, user: User, candidates: list[Article]) -> list[RankedArticle]:
        now = datetime.utcnow()
        ranked = []
        for article in candidates:
            try:
                score = self.scorer.score(user.dynamic_roles, user.topics, article, now)
            except Exception as e:
                # Unscorable articles sink to the bottom
                logger.warning("Scoring failed", article_id=article.id, error=str(e))
                score = 0
            ranked.append(RankedArticle(article=article, relevance_score=score))

        # Stable sort keeps the recency/quality order among equal scores
        ranked.sort(key=lambda r: r.relevance_score, reverse=True)
        return ranked

    @staticmethod
    def _page(ranked: list[RankedArticle], limit: int) -> FeedPage:
        has_more = len(ranked) == limit
        return FeedPage(
            articles=ranked,
            has_more=has_more,
            next_cursor=ranked[-1].article.id if has_more and ranked else None,
        )

    async def _read_cached_page(self, user_id: str) -> Optional[FeedPage]:
        key = CacheKeys.user_feed(user_id, 0)
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return FeedPage.model_validate(cached)
        except ValidationError:
            logger.warning("Discarding malformed feed cache entry", key=key)
            return None

    async def invalidate_user_feed(self, user_id: str) -> int:
        """Drop every cached feed page for a user."""
        return await self.cache.invalidate_user_feed(user_id)

    async def get_recommendations(self, user_id: str, limit: int = 5) -> list[Article]:
        return await self.strategy.get_recommendations(user_id, limit)
