"""
SQLAlchemy database models for the feed engine.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """Stored article with AI scores and engagement counters."""
    __tablename__ = "articles"

    # Autoincrement ids double as the pagination cursor
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    source_name: Mapped[Optional[str]] = mapped_column(String(255))
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # AI-computed fields
    quality_score: Mapped[float] = mapped_column(Float, default=0.0)
    target_roles_json: Mapped[Optional[list]] = mapped_column(JSON)  # [{role, weight}]
    skill_level: Mapped[str] = mapped_column(String(20), default="BEGINNER")
    tags_json: Mapped[Optional[list]] = mapped_column(JSON)
    is_clickbait: Mapped[bool] = mapped_column(Boolean, default=False)
    scored_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Engagement counters
    views: Mapped[int] = mapped_column(Integer, default=0)
    saves: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_articles_feed", "is_active", "is_clickbait", "quality_score"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_skill_level", "skill_level"),
    )


# =============================================================================
# Users
# =============================================================================

class DBUser(Base):
    """User account fields read and written by the ranking engine."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    dynamic_roles_json: Mapped[Optional[list]] = mapped_column(JSON)  # [{role, weight}]
    roles_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Preferences
    topics_json: Mapped[Optional[list]] = mapped_column(JSON)
    skill_level: Mapped[Optional[str]] = mapped_column(String(20))

    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


# =============================================================================
# Engagement
# =============================================================================

class DBEngagement(Base):
    """User interaction with an article."""
    __tablename__ = "engagements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    article_id: Mapped[int] = mapped_column(Integer, ForeignKey("articles.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Denormalized at write time for aggregation
    article_roles_json: Mapped[Optional[list]] = mapped_column(JSON)
    article_tags_json: Mapped[Optional[list]] = mapped_column(JSON)
    article_skill_level: Mapped[Optional[str]] = mapped_column(String(20))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_engagements_user_time", "user_id", "created_at"),
        Index("ix_engagements_article_user", "article_id", "user_id"),
        Index("ix_engagements_user_type", "user_id", "type"),
        Index("ix_engagements_created_at", "created_at"),
        # One VIEW row per (user, article)
        Index(
            "uq_engagements_single_view",
            "user_id",
            "article_id",
            unique=True,
            sqlite_where=text("type = 'VIEW'"),
            postgresql_where=text("type = 'VIEW'"),
        ),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_async_engine(
            database_url,
            echo=echo,
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables (use with caution!)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        """Close all pooled connections."""
        await self.engine.dispose()
