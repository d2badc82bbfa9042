"""
Weekly batch job: recompute every active user's dynamic role profile.

Runs Sunday 02:00 UTC by default. Safe to re-run: the same engagement window
yields the same profiles, and each update only deletes that user's feed cache.
"""
from datetime import datetime
from typing import Optional

import structlog

from feedengine.services.roles import RoleProfileService

logger = structlog.get_logger()


class RoleComputationJob:
    """Wraps ``RoleProfileService`` for the scheduler and the CLI."""

    def __init__(self, roles: RoleProfileService, window_days: int = 30):
        self.roles = roles
        self.window_days = window_days

    async def run(self, window_days: Optional[int] = None) -> dict:
        """Update all active users. Never raises; failures land in ``errors``."""
        start_time = datetime.utcnow()
        days = window_days or self.window_days
        logger.info("Starting role computation job", window_days=days)

        stats = {"processed": 0, "updated": 0, "errors": 0}
        try:
            result = await self.roles.update_all(days)
            stats.update(result.model_dump())
        except Exception as e:
            stats["errors"] += 1
            stats["failure"] = str(e)
            logger.error("Role computation job failed", error=str(e))

        stats["duration_seconds"] = (datetime.utcnow() - start_time).total_seconds()
        logger.info("Role computation job finished", **stats)
        return stats

    async def run_for_user(self, user_id: str, window_days: Optional[int] = None) -> Optional[dict]:
        """Recompute a single user (e.g. on demand after onboarding)."""
        logger.info("Computing roles for user", user_id=user_id)
        try:
            result = await self.roles.update_user(user_id, window_days or self.window_days)
        except Exception as e:
            logger.error("User role update failed", user_id=user_id, error=str(e))
            return {"user_id": user_id, "error": str(e)}

        if result is None:
            logger.info("Not enough engagement to update roles", user_id=user_id)
            return None

        logger.info(
            "Updated roles for user",
            user_id=user_id,
            new_roles=[r.model_dump() for r in result.new_roles],
        )
        return result.model_dump()
