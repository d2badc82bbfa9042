"""
Hourly batch job: recompute and cache trending for every period.
"""
from typing import Optional

import structlog

from feedengine.services.trending import TrendingService

logger = structlog.get_logger()


class TrendingJob:

    def __init__(self, trending: TrendingService):
        self.trending = trending

    async def run(self) -> dict:
        logger.info("Starting trending job")
        try:
            result = await self.trending.compute_all_periods()
        except Exception as e:
            logger.error("Trending job failed", error=str(e))
            return {"errors": 1, "failure": str(e)}

        stats = result.model_dump()
        logger.info("Trending job completed", **stats)
        return stats

    async def run_for_role(self, role: str, days: Optional[int] = None) -> dict:
        """Warm the role-specific trending cache."""
        try:
            articles = await self.trending.get_trending_by_role(role, days or 7)
        except Exception as e:
            logger.error("Role trending failed", role=role, error=str(e))
            return {"role": role, "errors": 1, "failure": str(e)}
        return {"role": role, "count": len(articles), "errors": 0}

    async def invalidate(self) -> dict:
        return {"deleted": await self.trending.invalidate_cache()}
