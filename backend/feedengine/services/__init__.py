"""
Services layer - the ranking and cache coherence logic.

1. Cache (cache.py):
   - Fail-open JSON cache over Redis, key builders

2. Roles (roles.py):
   - Weighted role distribution from engagement
   - Exponential smoothing against the stored profile

3. Relevance (relevance.py):
   - Role alignment + tag match + freshness + engagement, 0-100

4. Trending (trending.py):
   - Gravity-decayed popularity per period and per role

5. Feed (feed.py):
   - Query, score, cache and serve personalised pages

6. Engagement (engagement.py):
   - View/save/share facts and the invalidations they trigger
"""

from feedengine.services.articles import ArticleService
from feedengine.services.cache import CacheKeys, CacheStore
from feedengine.services.engagement import ArticleNotFoundError, EngagementRecorder
from feedengine.services.feed import FeedService
from feedengine.services.realtime import RealtimePublisher
from feedengine.services.recommendations import (
    LatestArticlesStrategy,
    RecommendationStrategy,
    load_strategy,
)
from feedengine.services.relevance import RelevanceScorer
from feedengine.services.roles import RoleProfileService, normalize_roles
from feedengine.services.trending import TrendingService

__all__ = [
    # Cache
    "CacheKeys",
    "CacheStore",
    # Articles
    "ArticleService",
    # Roles
    "RoleProfileService",
    "normalize_roles",
    # Ranking
    "RelevanceScorer",
    "TrendingService",
    # Feed
    "FeedService",
    "RecommendationStrategy",
    "LatestArticlesStrategy",
    "load_strategy",
    # Engagement
    "EngagementRecorder",
    "ArticleNotFoundError",
    # Egress
    "RealtimePublisher",
]
