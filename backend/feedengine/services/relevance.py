"""
Relevance scoring - how well an article fits one reader.

    score = role_alignment × 0.40
          + tag_match      × 0.30
          + freshness      × 0.20
          + engagement     × 0.10

scaled to an integer 0-100. Every component is in [0, 1] and the weights
sum to 1, so the result is bounded. The scorer holds no state: the same
profile, topics, article and evaluation instant always give the same score.
"""
import math
from datetime import datetime, timezone
from typing import Optional, Sequence

from feedengine.config import RankingWeights
from feedengine.models.domain import Article, RoleWeight


def naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class RelevanceScorer:
    """Multi-factor relevance score for a (user, article) pair."""

    # (max age in days, score), checked in order
    FRESHNESS_STEPS = ((7, 1.0), (14, 0.8), (30, 0.5))
    FRESHNESS_STALE = 0.2
    FRESHNESS_UNKNOWN = 0.5

    def __init__(self, weights: Optional[RankingWeights] = None):
        self.weights = weights or RankingWeights()

    def score(
        self,
        user_roles: Sequence[RoleWeight],
        user_topics: Sequence[str],
        article: Article,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Compute the relevance score.

        Args:
            user_roles: The reader's dynamic role profile
            user_topics: The reader's chosen topics
            article: Candidate article
            now: Evaluation instant (defaults to the current UTC time)

        Returns:
            Integer in [0, 100]
        """
        w = self.weights
        total = (
            self.role_alignment(user_roles, article.target_roles) * w.weight_role_alignment
            + self.tag_match(user_topics, article.tags) * w.weight_tag_match
            + self.freshness(article.published_at, now) * w.weight_freshness
            + self.engagement(article.views, article.saves) * w.weight_engagement
        )
        # Half-up rounding, not Python's banker's rounding
        return min(max(int(math.floor(total * 100 + 0.5)), 0), 100)

    @staticmethod
    def role_alignment(
        user_roles: Sequence[RoleWeight],
        article_roles: Sequence[RoleWeight],
    ) -> float:
        """Sum of user_weight × article_weight over shared roles, capped at 1."""
        article_weights: dict[str, float] = {}
        for r in article_roles or []:
            article_weights.setdefault(r.role, r.weight)

        score = 0.0
        seen = set()
        for r in user_roles or []:
            if r.role in seen:
                continue
            seen.add(r.role)
            if r.role in article_weights:
                score += r.weight * article_weights[r.role]

        return min(score, 1.0)

    @staticmethod
    def tag_match(user_topics: Sequence[str], article_tags: Sequence[str]) -> float:
        """Share of topics matching any tag (substring either way, case-insensitive)."""
        topics = [t.lower() for t in user_topics or [] if t and t.strip()]
        tags = [t.lower() for t in article_tags or [] if t and t.strip()]
        if not topics or not tags:
            return 0.0

        matches = sum(
            1 for topic in topics
            if any(topic in tag or tag in topic for tag in tags)
        )
        return matches / max(len(topics), len(tags))

    @classmethod
    def freshness(cls, published_at: Optional[datetime], now: Optional[datetime] = None) -> float:
        """Step function on article age."""
        if published_at is None:
            return cls.FRESHNESS_UNKNOWN

        now = naive_utc(now or datetime.utcnow())
        days_old = (now - naive_utc(published_at)).total_seconds() / 86400

        for max_days, score in cls.FRESHNESS_STEPS:
            if days_old <= max_days:
                return score
        return cls.FRESHNESS_STALE

    def engagement(self, views: Optional[int], saves: Optional[int]) -> float:
        """Popularity: 40% views, 60% saves, each saturating at its ceiling."""
        view_score = min(max(views or 0, 0) / self.weights.views_ceiling, 1.0)
        save_score = min(max(saves or 0, 0) / self.weights.saves_ceiling, 1.0)
        return view_score * 0.4 + save_score * 0.6
