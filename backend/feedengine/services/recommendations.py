"""
Recommendation strategies.

The open build ships ``LatestArticlesStrategy``. A deployment can swap in
its own implementation by naming it in ``RECOMMENDATION_STRATEGY`` as
``package.module:attribute``; the attribute is a ``RecommendationStrategy``
subclass (or any callable returning one) taking the article repository.
It is resolved once, at startup.
"""
import importlib
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from feedengine.models.domain import Article
from feedengine.repositories.base import ArticleRepository

logger = structlog.get_logger(__name__)


class RecommendationStrategy(ABC):
    """Picks articles to recommend to a user."""

    name: str = "base"

    @abstractmethod
    async def get_recommendations(self, user_id: str, limit: int = 5) -> list[Article]:
        pass


class LatestArticlesStrategy(RecommendationStrategy):
    """Default: the most recently published active articles."""

    name = "latest"

    def __init__(self, articles: ArticleRepository):
        self.articles = articles

    async def get_recommendations(self, user_id: str, limit: int = 5) -> list[Article]:
        return await self.articles.query_latest(limit)


def load_strategy(
    path: Optional[str],
    articles: ArticleRepository,
) -> RecommendationStrategy:
    """
    Resolve the configured strategy.

    Args:
        path: ``package.module:attribute``, or None for the default
        articles: Article repository handed to the strategy

    Raises:
        ValueError: malformed path, or the attribute does not build a strategy
        ImportError: the module cannot be imported
    """
    if not path:
        return LatestArticlesStrategy(articles)

    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Recommendation strategy must look like 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if factory is None:
        raise ValueError(f"{module_name} has no attribute {attribute!r}")

    strategy = factory(articles)
    if not isinstance(strategy, RecommendationStrategy):
        raise ValueError(f"{path} did not produce a RecommendationStrategy")

    logger.info("Recommendation strategy loaded", strategy=path)
    return strategy
