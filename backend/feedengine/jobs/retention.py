"""
Daily batch job: enforce the engagement retention window (90 days).
"""
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError

from feedengine.repositories.base import EngagementRepository

logger = structlog.get_logger()


class EngagementRetentionJob:

    def __init__(self, engagements: EngagementRepository, retention_days: int = 90):
        self.engagements = engagements
        self.retention_days = retention_days

    async def run(self) -> dict:
        cutoff = datetime.utcnow() - timedelta(days=self.retention_days)
        try:
            deleted = await self.engagements.delete_older_than(cutoff)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Engagement retention purge failed", error=str(e))
            return {"deleted": 0, "errors": 1, "failure": str(e)}

        logger.info("Engagement retention purge complete", deleted=deleted, cutoff=cutoff.isoformat())
        return {"deleted": deleted, "errors": 0}
