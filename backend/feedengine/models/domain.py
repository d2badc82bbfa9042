"""
Domain models for the feed engine.
These are the core business entities, independent of database/cache representation.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class RoleTag(str, Enum):
    """Role categories used to match user interest to article subject."""
    FRONTEND = "FRONTEND"
    BACKEND = "BACKEND"
    DEVOPS = "DEVOPS"
    ML = "ML"
    MOBILE = "MOBILE"
    DATA = "DATA"
    SECURITY = "SECURITY"


VALID_ROLES = frozenset(r.value for r in RoleTag)


class SkillLevel(str, Enum):
    """Difficulty of an article, or a reader's preferred difficulty."""
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class EngagementType(str, Enum):
    """Kinds of user interaction with an article."""
    VIEW = "VIEW"
    SAVE = "SAVE"
    SHARE = "SHARE"
    RATE = "RATE"
    UNSAVE = "UNSAVE"


# =============================================================================
# Roles
# =============================================================================

class RoleWeight(BaseModel):
    """A role with its weight, used both for user profiles and article targets."""
    role: str
    weight: float = Field(ge=0.0, le=1.0)


class RoleUpdateResult(BaseModel):
    """Outcome of recomputing one user's role profile."""
    user_id: str
    previous_roles: list[RoleWeight]
    new_roles: list[RoleWeight]
    roles_touched: int


class RoleBatchResult(BaseModel):
    """Aggregate outcome of a role recomputation batch."""
    processed: int = 0
    updated: int = 0
    errors: int = 0


class RoleProfileSummary(BaseModel):
    """Read model combining stored roles with derived skill level."""
    roles: list[RoleWeight]
    skill_level: SkillLevel
    total_engagements: int


# =============================================================================
# Users & Articles
# =============================================================================

class User(BaseModel):
    """The slice of a user account the ranking engine needs."""
    id: str
    dynamic_roles: list[RoleWeight] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    skill_level: Optional[SkillLevel] = None
    roles_updated_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None


class Article(BaseModel):
    """Core article entity as produced by ingestion and AI scoring."""
    id: int
    title: str
    description: str = ""
    url: str
    source_name: Optional[str] = None
    published_at: Optional[datetime] = None

    # AI-computed fields
    quality_score: float = Field(default=0.0, ge=0.0, le=10.0)
    target_roles: list[RoleWeight] = Field(default_factory=list)
    skill_level: SkillLevel = SkillLevel.BEGINNER
    tags: list[str] = Field(default_factory=list)
    is_clickbait: bool = False
    scored_at: Optional[datetime] = None

    # Engagement counters
    views: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)

    is_active: bool = True


class RankedArticle(BaseModel):
    """An article with its per-user relevance score (None when unscored)."""
    article: Article
    relevance_score: Optional[int] = None


class FeedPage(BaseModel):
    """One page of a feed."""
    articles: list[RankedArticle] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[int] = None


class TrendingArticle(BaseModel):
    """An article with its gravity-decayed trending score."""
    article: Article
    trending_score: float


class TrendingPeriodsResult(BaseModel):
    """Counts of trending articles cached per period."""
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    errors: int = 0


# =============================================================================
# Engagement
# =============================================================================

class EngagementEvent(BaseModel):
    """A recorded interaction, with article metadata captured at event time."""
    id: Optional[int] = None
    user_id: str
    article_id: int
    type: EngagementType
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    article_roles: list[str] = Field(default_factory=list)
    article_tags: list[str] = Field(default_factory=list)
    article_skill_level: Optional[SkillLevel] = None


class EngagementWithArticle(BaseModel):
    """An engagement joined to the article's current state."""
    engagement: EngagementEvent
    article: Article
