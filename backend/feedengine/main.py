"""
Process entry point for the feed engine.

Builds every component from settings with explicitly injected stores,
owns their lifecycle, and runs the batch scheduler:

    roles      weekly   (Sunday 02:00 UTC)
    trending   hourly
    retention  daily    (03:00 UTC)
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from feedengine.config import Settings, get_settings
from feedengine.core.logging import configure_logging
from feedengine.jobs.retention import EngagementRetentionJob
from feedengine.jobs.role_computation import RoleComputationJob
from feedengine.jobs.trending import TrendingJob
from feedengine.models.database import Database
from feedengine.repositories import (
    SqlArticleRepository,
    SqlEngagementRepository,
    SqlUserRepository,
)
from feedengine.services import (
    ArticleService,
    CacheStore,
    EngagementRecorder,
    FeedService,
    RealtimePublisher,
    RelevanceScorer,
    RoleProfileService,
    TrendingService,
    load_strategy,
)

logger = structlog.get_logger()


class FeedEngine:
    """All engine components wired together for one process."""

    def __init__(
        self,
        settings: Settings,
        database: Optional[Database] = None,
        cache: Optional[CacheStore] = None,
    ):
        self.settings = settings
        self.database = database or Database(settings.database_url)
        self.cache = cache or CacheStore.from_url(settings.redis_url, settings.cache)
        self.publisher = RealtimePublisher(self.cache.client, settings.cache.operation_timeout)

        # Stores
        self.articles = SqlArticleRepository(self.database)
        self.engagements = SqlEngagementRepository(self.database)
        self.users = SqlUserRepository(self.database)

        # Services
        self.scorer = RelevanceScorer(settings.ranking)
        self.article_service = ArticleService(self.articles, self.cache, settings.cache)
        self.feed = FeedService(
            self.articles,
            self.cache,
            scorer=self.scorer,
            strategy=load_strategy(settings.recommendation_strategy, self.articles),
            settings=settings.feed,
            cache_settings=settings.cache,
        )
        self.roles = RoleProfileService(
            self.engagements,
            self.users,
            self.cache,
            publisher=self.publisher,
            settings=settings.roles,
        )
        self.trending = TrendingService(
            self.articles,
            self.cache,
            settings=settings.trending,
            cache_settings=settings.cache,
        )
        self.recorder = EngagementRecorder(self.articles, self.engagements, self.cache)

        # Jobs
        self.role_job = RoleComputationJob(self.roles, settings.roles.window_days)
        self.trending_job = TrendingJob(self.trending)
        self.retention_job = EngagementRetentionJob(
            self.engagements, settings.schedule.engagement_retention_days
        )

    async def start(self) -> None:
        logger.info("Initializing database", url=self.settings.database_url)
        await self.database.create_tables()
        await self.cache.connect()

    async def stop(self) -> None:
        logger.info("Shutting down")
        await self.cache.close()
        await self.database.dispose()


@asynccontextmanager
async def engine_lifespan(settings: Optional[Settings] = None) -> AsyncIterator[FeedEngine]:
    """Start an engine and make sure its connections are released."""
    engine = FeedEngine(settings or get_settings())
    await engine.start()
    try:
        yield engine
    finally:
        await engine.stop()


def build_scheduler(engine: FeedEngine) -> AsyncIOScheduler:
    """Register the batch jobs on an asyncio scheduler (not started)."""
    schedule = engine.settings.schedule
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        engine.role_job.run,
        CronTrigger(day_of_week=schedule.roles_day_of_week, hour=schedule.roles_hour, minute=0),
        id="role_computation",
        name="Weekly Role Computation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        engine.trending_job.run,
        CronTrigger(minute=schedule.trending_minute),
        id="trending",
        name="Hourly Trending",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        engine.retention_job.run,
        CronTrigger(hour=schedule.retention_hour, minute=0),
        id="engagement_retention",
        name="Daily Engagement Retention",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def run_scheduler(settings: Optional[Settings] = None) -> None:
    """Run the batch scheduler until cancelled."""
    settings = settings or get_settings()

    async with engine_lifespan(settings) as engine:
        scheduler = build_scheduler(engine)
        scheduler.start()
        logger.info(
            "Scheduler started",
            jobs=[job.id for job in scheduler.get_jobs()],
        )

        # Warm trending immediately so readers do not wait an hour
        await engine.trending_job.run()

        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.environment != "development")
    try:
        asyncio.run(run_scheduler(settings))
    except KeyboardInterrupt:
        pass
