"""
Role profile service - derives each reader's dynamic role distribution.

A profile is a list of (role, weight) pairs. After every computation the
weights are pruned below ``min_weight`` (5%), renormalised to sum to 1 and
sorted descending.

Computation over the last ``window_days`` of engagement:

    role_total[r] = Σ event_weight(type) × article_target_weight[r]
    event_weight  = VIEW 1, SAVE 3, SHARE 5

Updates are smoothed against the stored profile so one busy session cannot
overwrite a stable history:

    smoothed[r] = α × computed[r] + (1 - α) × previous[r]     (α = 0.7)

Roles that disappear from the computation only decay (previous × (1 - α)).
"""
import asyncio
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog

from feedengine.config import RoleSettings
from feedengine.models.domain import (
    VALID_ROLES,
    EngagementType,
    RoleBatchResult,
    RoleProfileSummary,
    RoleUpdateResult,
    RoleWeight,
    SkillLevel,
)
from feedengine.repositories.base import EngagementRepository, UserRepository
from feedengine.services.cache import CacheStore
from feedengine.services.realtime import RealtimePublisher

logger = structlog.get_logger(__name__)

SKILL_VALUES = {
    SkillLevel.BEGINNER: 1,
    SkillLevel.INTERMEDIATE: 2,
    SkillLevel.ADVANCED: 3,
}

ROLE_SIGNALS = (EngagementType.VIEW, EngagementType.SAVE, EngagementType.SHARE)

# Float slack for threshold comparisons
EPSILON = 1e-9


def normalize_roles(weights: dict[str, float], min_weight: float) -> list[RoleWeight]:
    """
    Normalise raw role weights to a profile.

    Normalise to 1, drop roles under ``min_weight``, renormalise the
    survivors and sort descending (ties broken by role name for stability).
    """
    positive = {role: w for role, w in weights.items() if w > 0}
    total = sum(positive.values())
    if total <= 0:
        return []

    kept = {role: w / total for role, w in positive.items() if w / total >= min_weight - EPSILON}
    kept_total = sum(kept.values())
    if kept_total <= 0:
        return []

    roles = [
        RoleWeight(role=role, weight=min(w / kept_total, 1.0))
        for role, w in kept.items()
    ]
    roles.sort(key=lambda r: (-r.weight, r.role))
    return roles


class RoleProfileService:
    """Computes, smooths and persists dynamic role profiles."""

    def __init__(
        self,
        engagements: EngagementRepository,
        users: UserRepository,
        cache: CacheStore,
        publisher: Optional[RealtimePublisher] = None,
        settings: Optional[RoleSettings] = None,
    ):
        self.engagements = engagements
        self.users = users
        self.cache = cache
        self.publisher = publisher
        self.settings = settings or RoleSettings()

        self._signal_weights = {
            EngagementType.VIEW: self.settings.view_weight,
            EngagementType.SAVE: self.settings.save_weight,
            EngagementType.SHARE: self.settings.share_weight,
        }

    async def compute_roles(
        self,
        user_id: str,
        window_days: Optional[int] = None,
    ) -> list[RoleWeight]:
        """
        Compute role weights from a user's recent engagement.

        Args:
            user_id: The user
            window_days: Look-back window (defaults to settings, 30 days)

        Returns:
            Normalised profile, or an empty list if there is nothing to go on
        """
        days = window_days or self.settings.window_days
        since = datetime.utcnow() - timedelta(days=days)

        rows = await self.engagements.query_engagements_with_article_join(
            user_id, since, types=ROLE_SIGNALS
        )

        totals: dict[str, float] = {}
        for row in rows:
            event_weight = self._signal_weights.get(row.engagement.type, 0.0)
            for target in row.article.target_roles:
                if target.role not in VALID_ROLES:
                    continue
                totals[target.role] = totals.get(target.role, 0.0) + event_weight * target.weight

        return normalize_roles(totals, self.settings.min_weight)

    def smooth(
        self,
        previous: Sequence[RoleWeight],
        computed: Sequence[RoleWeight],
    ) -> list[RoleWeight]:
        """
        Blend a freshly computed profile into the previous one.

        ``smooth(p, p)`` returns ``p``.
        """
        if not previous:
            return list(computed)

        alpha = self.settings.smoothing_factor
        prev = {r.role: r.weight for r in previous}
        comp = {r.role: r.weight for r in computed}

        blended: dict[str, float] = {}
        for role, weight in comp.items():
            blended[role] = alpha * weight + (1 - alpha) * prev.get(role, 0.0)

        for role, weight in prev.items():
            if role in comp:
                continue
            decayed = weight * (1 - alpha)
            if decayed >= self.settings.min_weight - EPSILON:
                blended[role] = decayed

        return normalize_roles(blended, self.settings.min_weight)

    async def update_user(
        self,
        user_id: str,
        window_days: Optional[int] = None,
    ) -> Optional[RoleUpdateResult]:
        """
        Recompute, smooth and store one user's profile.

        Not re-entrant for the same user: callers serialise per user.

        Returns:
            None when the user is unknown or has no qualifying engagement
            (the stored profile is left untouched)
        """
        user = await self.users.get(user_id)
        if user is None:
            return None

        computed = await self.compute_roles(user_id, window_days)
        if not computed:
            return None

        previous = user.dynamic_roles
        new_roles = self.smooth(previous, computed)

        await self.users.save_roles(user_id, new_roles, datetime.utcnow())
        await self.cache.invalidate_user_feed(user_id)

        if self.publisher is not None:
            await self.publisher.send_roles_updated(user_id, new_roles)

        return RoleUpdateResult(
            user_id=user_id,
            previous_roles=previous,
            new_roles=new_roles,
            roles_touched=len(computed),
        )

    async def update_all(self, window_days: Optional[int] = None) -> RoleBatchResult:
        """
        Recompute profiles for every user active in the window.

        Users run concurrently (bounded); each appears once per run. A failing
        user is logged and counted, never aborting the batch.
        """
        days = window_days or self.settings.window_days
        since = datetime.utcnow() - timedelta(days=days)

        user_ids = await self.engagements.active_user_ids(since)
        logger.info("Processing roles for active users", users=len(user_ids), window_days=days)

        result = RoleBatchResult(processed=len(user_ids))
        semaphore = asyncio.Semaphore(self.settings.batch_concurrency)

        async def process(user_id: str) -> None:
            async with semaphore:
                try:
                    update = await self.update_user(user_id, days)
                except Exception as e:
                    result.errors += 1
                    logger.error("Failed to update roles", user_id=user_id, error=str(e))
                    return

                if update:
                    result.updated += 1
                    logger.debug(
                        "Updated roles",
                        user_id=user_id,
                        roles=[r.model_dump() for r in update.new_roles],
                    )

        await asyncio.gather(*(process(uid) for uid in dict.fromkeys(user_ids)))

        logger.info(
            "Role computation complete",
            processed=result.processed,
            updated=result.updated,
            errors=result.errors,
        )
        return result

    async def estimate_skill_level(self, user_id: str) -> SkillLevel:
        """Average skill level of articles engaged with in the last 30 days."""
        since = datetime.utcnow() - timedelta(days=30)
        rows = await self.engagements.query_engagements_with_article_join(user_id, since)

        if not rows:
            return SkillLevel.INTERMEDIATE

        total = sum(SKILL_VALUES.get(row.article.skill_level, 2) for row in rows)
        average = total / len(rows)

        if average <= 1.5:
            return SkillLevel.BEGINNER
        if average >= 2.5:
            return SkillLevel.ADVANCED
        return SkillLevel.INTERMEDIATE

    async def get_role_profile(self, user_id: str) -> RoleProfileSummary:
        """Current roles, estimated skill level and 30-day engagement count."""
        user = await self.users.get(user_id)
        skill_level = await self.estimate_skill_level(user_id)
        since = datetime.utcnow() - timedelta(days=30)
        total = await self.engagements.count_for_user(user_id, since)

        return RoleProfileSummary(
            roles=user.dynamic_roles if user else [],
            skill_level=skill_level,
            total_engagements=total,
        )
