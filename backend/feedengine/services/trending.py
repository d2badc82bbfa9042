"""
Trending service - gravity-decayed popularity.

Hacker News style:

    score = (views × 1 + saves × 3 + shares × 5) / (hours_old + 2) ^ 1.8

``hours_old`` is always measured at evaluation time, so the same article
sinks between runs even when its counters do not move.
"""
from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import ValidationError

from feedengine.config import CacheSettings, TrendingSettings
from feedengine.models.domain import Article, TrendingArticle, TrendingPeriodsResult
from feedengine.repositories.base import ArticleRepository
from feedengine.services.cache import CacheKeys, CacheStore
from feedengine.services.relevance import naive_utc

logger = structlog.get_logger(__name__)

PERIOD_NAMES = {1: "daily", 7: "weekly", 30: "monthly"}


class TrendingService:
    """Computes and caches trending articles per period and per role."""

    def __init__(
        self,
        articles: ArticleRepository,
        cache: CacheStore,
        settings: Optional[TrendingSettings] = None,
        cache_settings: Optional[CacheSettings] = None,
    ):
        self.articles = articles
        self.cache = cache
        self.settings = settings or TrendingSettings()
        self.cache_settings = cache_settings or CacheSettings()

    def calculate_score(
        self,
        views: int,
        saves: int,
        shares: int,
        hours_old: float,
    ) -> float:
        """
        Gravity score for one article.

        Args:
            views, saves, shares: Engagement counters
            hours_old: Age at evaluation time (negative ages count as 0)

        Returns:
            Non-negative score, strictly decreasing in ``hours_old``
            whenever there is any engagement
        """
        s = self.settings
        raw = (views or 0) * s.view_weight + (saves or 0) * s.save_weight + (shares or 0) * s.share_weight
        penalty = (max(hours_old, 0.0) + 2) ** s.gravity
        return raw / penalty

    def _rank(
        self,
        articles: list[Article],
        limit: int,
        now: Optional[datetime] = None,
    ) -> list[TrendingArticle]:
        now = now or datetime.utcnow()
        scored = []
        for article in articles:
            if article.published_at is None:
                continue
            hours_old = (naive_utc(now) - naive_utc(article.published_at)).total_seconds() / 3600
            scored.append(
                TrendingArticle(
                    article=article,
                    trending_score=self.calculate_score(
                        article.views, article.saves, article.shares, hours_old
                    ),
                )
            )

        scored.sort(key=lambda t: (-t.trending_score, -t.article.id))
        return scored[:limit]

    async def compute_trending(self, window_days: int = 7, limit: int = 50) -> list[TrendingArticle]:
        """Top ``limit`` active, quality >= 5 articles published in the window."""
        now = datetime.utcnow()
        since = now - timedelta(days=window_days)

        logger.info("Computing trending", window_days=window_days)
        articles = await self.articles.query_articles_in_window(since, self.settings.min_quality)
        trending = self._rank(articles, limit, now)

        logger.info("Found trending articles", window_days=window_days, count=len(trending))
        return trending

    async def _read_cached(self, key: str) -> Optional[list[TrendingArticle]]:
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return [TrendingArticle.model_validate(item) for item in cached]
        except (ValidationError, TypeError):
            logger.warning("Discarding malformed trending cache entry", key=key)
            return None

    async def _write_cached(self, key: str, trending: list[TrendingArticle], ttl: int) -> None:
        await self.cache.set(key, [t.model_dump(mode="json") for t in trending], ttl)

    async def get_trending(self, days: int = 7, limit: int = 20) -> list[TrendingArticle]:
        """Cached trending for a period, computed on miss."""
        key = CacheKeys.trending(days)

        cached = await self._read_cached(key)
        if cached is not None:
            logger.debug("Trending cache hit", key=key)
            return cached[:limit]

        trending = await self.compute_trending(days, max(limit, self.settings.cached_limit))
        await self._write_cached(key, trending, self.cache_settings.trending_ttl)
        return trending[:limit]

    async def compute_all_periods(self) -> TrendingPeriodsResult:
        """Recompute and cache trending for every configured period (hourly job)."""
        counts: dict[str, int] = {}
        errors = 0

        for days in self.settings.periods_days:
            name = PERIOD_NAMES.get(days, f"{days}d")
            try:
                trending = await self.compute_trending(days, self.settings.cached_limit)
                await self._write_cached(CacheKeys.trending(days), trending, self.cache_settings.trending_ttl)
            except Exception as e:
                logger.error("Trending period failed", period=name, window_days=days, error=str(e))
                errors += 1
                continue

            counts[name] = len(trending)
            logger.info("Cached trending", period=name, count=len(trending))

        return TrendingPeriodsResult(
            daily=counts.get("daily", 0),
            weekly=counts.get("weekly", 0),
            monthly=counts.get("monthly", 0),
            errors=errors,
        )

    async def get_trending_by_role(
        self,
        role: str,
        days: int = 7,
        limit: int = 20,
    ) -> list[TrendingArticle]:
        """Trending restricted to articles targeting ``role``; cached on demand."""
        key = CacheKeys.trending_by_role(role, days)

        cached = await self._read_cached(key)
        if cached is not None:
            return cached[:limit]

        now = datetime.utcnow()
        articles = await self.articles.query_articles_in_window(
            now - timedelta(days=days),
            self.settings.min_quality,
            role=role,
        )
        trending = self._rank(articles, max(limit, self.settings.cached_limit), now)

        await self._write_cached(key, trending, self.cache_settings.trending_role_ttl)
        return trending[:limit]

    async def invalidate_cache(self) -> int:
        deleted = await self.cache.delete_pattern(CacheKeys.TRENDING_PATTERN)
        logger.info("Trending cache invalidated", deleted=deleted)
        return deleted
