"""
Article reads with a per-article read-through cache.
"""
from typing import Optional

import structlog
from pydantic import ValidationError

from feedengine.config import CacheSettings
from feedengine.models.domain import Article
from feedengine.repositories.base import ArticleRepository
from feedengine.services.cache import CacheKeys, CacheStore

logger = structlog.get_logger(__name__)


class ArticleService:
    """Single-article lookups through ``article:{id}:data``."""

    def __init__(
        self,
        articles: ArticleRepository,
        cache: CacheStore,
        cache_settings: Optional[CacheSettings] = None,
    ):
        self.articles = articles
        self.cache = cache
        self.cache_settings = cache_settings or CacheSettings()

    async def get_by_id(self, article_id: int) -> Optional[Article]:
        key = CacheKeys.article(article_id)

        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return Article.model_validate(cached)
            except ValidationError:
                logger.warning("Discarding malformed article cache entry", key=key)

        article = await self.articles.get(article_id)
        if article is not None:
            await self.cache.set(key, article.model_dump(mode="json"), self.cache_settings.article_ttl)
        return article

    async def invalidate(self, article_id: int) -> None:
        await self.cache.delete(CacheKeys.article(article_id))
