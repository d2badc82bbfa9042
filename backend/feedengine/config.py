"""
Engine configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RankingWeights(BaseSettings):
    """Weights for the per-user relevance score."""

    model_config = SettingsConfigDict(env_prefix="RANKING_")

    weight_role_alignment: float = Field(default=0.40, ge=0.0, le=1.0)
    weight_tag_match: float = Field(default=0.30, ge=0.0, le=1.0)
    weight_freshness: float = Field(default=0.20, ge=0.0, le=1.0)
    weight_engagement: float = Field(default=0.10, ge=0.0, le=1.0)

    # Engagement normalisation ceilings
    views_ceiling: int = Field(default=1000, ge=1)
    saves_ceiling: int = Field(default=100, ge=1)

    @field_validator(
        "weight_role_alignment", "weight_tag_match", "weight_freshness", "weight_engagement"
    )
    @classmethod
    def validate_weights(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Weights must be between 0 and 1")
        return v

    @model_validator(mode="after")
    def validate_total(self) -> "RankingWeights":
        total = (
            self.weight_role_alignment
            + self.weight_tag_match
            + self.weight_freshness
            + self.weight_engagement
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Ranking weights must sum to 1.0, got {total:.4f}")
        return self


class CacheSettings(BaseSettings):
    """Cache store connection and TTLs (seconds)."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    operation_timeout: float = Field(
        default=2.0,
        gt=0.0,
        description="Per-operation timeout before degrading to a cache miss",
    )
    connect_attempts: int = Field(default=3, ge=1)

    feed_ttl: int = Field(default=5 * 60, ge=1)
    feed_generation_ttl: int = Field(
        default=24 * 60 * 60,
        ge=1,
        description="Lifetime of the per-user feed invalidation counter",
    )
    article_ttl: int = Field(default=60 * 60, ge=1)
    trending_ttl: int = Field(default=10 * 60, ge=1)
    trending_role_ttl: int = Field(default=30 * 60, ge=1)


class RoleSettings(BaseSettings):
    """Dynamic role profile computation."""

    model_config = SettingsConfigDict(env_prefix="ROLES_")

    smoothing_factor: float = Field(
        default=0.7,
        gt=0.0,
        le=1.0,
        description="Weight of freshly computed roles vs. the previous profile",
    )
    min_weight: float = Field(default=0.05, ge=0.0, lt=1.0)
    window_days: int = Field(default=30, ge=1)
    batch_concurrency: int = Field(default=8, ge=1)

    view_weight: float = Field(default=1.0, ge=0.0)
    save_weight: float = Field(default=3.0, ge=0.0)
    share_weight: float = Field(default=5.0, ge=0.0)


class TrendingSettings(BaseSettings):
    """Gravity-decayed trending score."""

    model_config = SettingsConfigDict(env_prefix="TRENDING_")

    gravity: float = Field(default=1.8, gt=0.0)
    view_weight: float = Field(default=1.0, ge=0.0)
    save_weight: float = Field(default=3.0, ge=0.0)
    share_weight: float = Field(default=5.0, ge=0.0)
    min_quality: float = Field(default=5.0, ge=0.0, le=10.0)

    periods_days: list[int] = Field(default=[1, 7, 30])
    cached_limit: int = Field(
        default=50,
        ge=1,
        description="Number of trending articles computed and cached per key",
    )


class FeedSettings(BaseSettings):
    """Personalised feed assembly."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    min_quality: float = Field(default=7.0, ge=0.0, le=10.0)
    default_limit: int = Field(default=20, ge=1, le=100)
    max_limit: int = Field(default=100, ge=1, le=500)
    overfetch_factor: int = Field(default=3, ge=1)


class ScheduleSettings(BaseSettings):
    """Cron schedule for batch jobs (UTC)."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    roles_day_of_week: str = Field(default="sun")
    roles_hour: int = Field(default=2, ge=0, le=23)
    trending_minute: int = Field(default=0, ge=0, le=59)
    retention_hour: int = Field(default=3, ge=0, le=23)
    engagement_retention_days: int = Field(default=90, ge=1)


class Settings(BaseSettings):
    """Main engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Feed Engine"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Stores
    database_url: str = Field(
        default="sqlite+aiosqlite:///./feedengine.db",
        description="Async database URL (SQLAlchemy format)",
    )
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Recommendation override, "package.module:attribute"
    recommendation_strategy: Optional[str] = Field(default=None)

    # Nested groups
    ranking: RankingWeights = Field(default_factory=RankingWeights)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    roles: RoleSettings = Field(default_factory=RoleSettings)
    trending: TrendingSettings = Field(default_factory=TrendingSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
