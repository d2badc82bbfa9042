"""
Base interfaces for the stores the ranking engine reads and writes.

The engine never talks to the database directly: grouping, weighting and
sorting happen in-process over what these repositories return, so any store
that can answer these queries can back the engine.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from feedengine.models.domain import (
    Article,
    EngagementEvent,
    EngagementType,
    EngagementWithArticle,
    RoleWeight,
    SkillLevel,
    User,
)


@dataclass
class ArticleQuery:
    """Filter for feed candidate queries."""
    min_quality: float = 7.0
    active_only: bool = True
    exclude_clickbait: bool = True
    skill_levels: Optional[Sequence[SkillLevel]] = None
    cursor: Optional[int] = None  # only ids strictly below the cursor
    limit: int = 20


class ArticleRepository(ABC):
    """Article corpus."""

    @abstractmethod
    async def get(self, article_id: int) -> Optional[Article]:
        """Fetch an article by id, or None."""
        pass

    @abstractmethod
    async def query_feed_candidates(self, query: ArticleQuery) -> list[Article]:
        """
        Return articles matching the filter, newest first then highest quality.

        Args:
            query: Quality floor, flags, skill levels, cursor and limit

        Returns:
            At most ``query.limit`` articles
        """
        pass

    @abstractmethod
    async def query_articles_in_window(
        self,
        since: datetime,
        min_quality: float,
        role: Optional[str] = None,
    ) -> list[Article]:
        """
        Return active articles published at or after ``since``.

        Args:
            since: Earliest publish time
            min_quality: Minimum quality score
            role: Only articles targeting this role (optional)
        """
        pass

    @abstractmethod
    async def query_latest(self, limit: int) -> list[Article]:
        """Return the most recently published active articles."""
        pass

    @abstractmethod
    async def increment_counter(self, article_id: int, counter: str, amount: int = 1) -> bool:
        """
        Atomically adjust an engagement counter (views, saves, shares).

        Counters never go below zero. Returns False if the article is missing.
        """
        pass


class EngagementRepository(ABC):
    """Engagement event log."""

    @abstractmethod
    async def upsert_view(self, event: EngagementEvent) -> EngagementEvent:
        """Insert the (user, article) VIEW record, or touch its timestamp."""
        pass

    @abstractmethod
    async def append(self, event: EngagementEvent) -> EngagementEvent:
        """Append a new engagement record."""
        pass

    @abstractmethod
    async def query_engagements_with_article_join(
        self,
        user_id: str,
        since: datetime,
        types: Optional[Sequence[EngagementType]] = None,
    ) -> list[EngagementWithArticle]:
        """
        Return a user's engagements since ``since`` joined to their articles.

        Engagements whose article no longer exists are left out.
        """
        pass

    @abstractmethod
    async def active_user_ids(self, since: datetime) -> list[str]:
        """Distinct users with any engagement since ``since``."""
        pass

    @abstractmethod
    async def count_for_user(
        self,
        user_id: str,
        since: datetime,
        engagement_type: Optional[EngagementType] = None,
    ) -> int:
        pass

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        article_id: Optional[int] = None,
        engagement_type: Optional[EngagementType] = None,
    ) -> list[EngagementEvent]:
        pass

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Purge events created before ``cutoff``; returns rows deleted."""
        pass


class UserRepository(ABC):
    """User store (only the fields the engine needs)."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def save_roles(
        self,
        user_id: str,
        roles: list[RoleWeight],
        updated_at: datetime,
    ) -> None:
        """Persist a user's dynamic role profile."""
        pass
