from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable

from redis.asyncio import Redis

from partnertiers.core.numeric import round_half_up
from partnertiers.domain.models import (
    AchievementCategory,
    AchievementProgress,
    AchievementStatus,
    EarnedAchievement,
)
from partnertiers.persistence.repos import achievements as achievements_repo
from partnertiers.services.achievements.definitions import AchievementCatalog
from partnertiers.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AchievementTracker:
    """Award, list and summarize partner achievements.

    Non-repeatable awards are stored under their id; repeatable awards are
    stored once per instance as ``{id}_{n}``. Both live in the same hash.
    """

    def __init__(
        self,
        redis: Redis,
        catalog: AchievementCatalog,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._catalog = catalog
        self._clock = clock or _utc_now

    @property
    def catalog(self) -> AchievementCatalog:
        return self._catalog

    def base_id(self, award_field: str) -> str | None:
        # Exact ids win over the suffix form so ids that end in digits still resolve.
        if award_field in self._catalog:
            return award_field
        base, sep, suffix = award_field.rpartition("_")
        if sep and suffix.isdigit() and base in self._catalog:
            return base
        return None

    async def award_achievement(self, partner_id: str, achievement_id: str) -> bool:
        definition = self._catalog.get(achievement_id)
        if definition is None:
            logger.warning("achievement_unknown partner_id=%s achievement_id=%s", partner_id, achievement_id)
            increment_counter("achievements_unknown_total")
            return False

        completed_at = self._clock()
        if definition.repeatable:
            field = await achievements_repo.award_repeatable(self._redis, partner_id, achievement_id, completed_at)
            logger.info("achievement_awarded partner_id=%s achievement_id=%s field=%s", partner_id, achievement_id, field)
            increment_counter("achievements_awarded_total")
            return True

        created = await achievements_repo.award_once(self._redis, partner_id, achievement_id, completed_at)
        if not created:
            logger.debug("achievement_already_earned partner_id=%s achievement_id=%s", partner_id, achievement_id)
            return False
        logger.info("achievement_awarded partner_id=%s achievement_id=%s", partner_id, achievement_id)
        increment_counter("achievements_awarded_total")
        return True

    async def _grouped_awards(self, partner_id: str) -> dict[str, list[datetime]]:
        awards = await achievements_repo.list_awards(self._redis, partner_id)
        grouped: dict[str, list[datetime]] = {}
        for field, completed_at in awards.items():
            base = self.base_id(field)
            if base is None:
                # Awards for ids removed from the catalog stay stored but are not reported.
                logger.debug("achievement_award_orphaned partner_id=%s field=%s", partner_id, field)
                continue
            try:
                moment = datetime.fromisoformat(completed_at)
            except (TypeError, ValueError):
                logger.warning("achievement_award_invalid partner_id=%s field=%s", partner_id, field)
                continue
            grouped.setdefault(base, []).append(moment)
        for moments in grouped.values():
            moments.sort()
        return grouped

    async def list_earned_achievements(self, partner_id: str) -> list[EarnedAchievement]:
        grouped = await self._grouped_awards(partner_id)
        earned: list[EarnedAchievement] = []
        for definition in self._catalog.all():
            moments = grouped.get(definition.id)
            if not moments:
                continue
            if definition.repeatable:
                earned.extend(EarnedAchievement(definition=definition, completed_at=moment) for moment in moments)
            else:
                earned.append(EarnedAchievement(definition=definition, completed_at=moments[0]))
        return earned

    async def earned_ids(self, partner_id: str) -> set[str]:
        return set(await self._grouped_awards(partner_id))

    async def has_achievement(self, partner_id: str, achievement_id: str) -> bool:
        definition = self._catalog.get(achievement_id)
        if definition is None:
            return False
        if not definition.repeatable:
            return await achievements_repo.has_award(self._redis, partner_id, achievement_id)
        return await self.count_achievement(partner_id, achievement_id) > 0

    async def count_achievement(self, partner_id: str, achievement_id: str) -> int:
        grouped = await self._grouped_awards(partner_id)
        return len(grouped.get(achievement_id, []))

    def _progress(
        self,
        category: AchievementCategory,
        grouped: dict[str, list[datetime]],
    ) -> AchievementProgress:
        statuses: list[AchievementStatus] = []
        for definition in self._catalog.by_category(category):
            moments = grouped.get(definition.id, [])
            statuses.append(
                AchievementStatus(
                    definition=definition,
                    completed_at=moments[0] if moments else None,
                    count=len(moments),
                )
            )
        total = len(statuses)
        completed = sum(1 for status in statuses if status.count > 0)
        percentage = round_half_up(completed / total * 100) if total else 0
        return AchievementProgress(
            category=category,
            total=total,
            completed=completed,
            percentage=percentage,
            achievements=statuses,
        )

    async def progress_by_category(self, partner_id: str, category: AchievementCategory) -> AchievementProgress:
        grouped = await self._grouped_awards(partner_id)
        return self._progress(category, grouped)

    async def progress_all_categories(self, partner_id: str) -> list[AchievementProgress]:
        # One store read for every category.
        grouped = await self._grouped_awards(partner_id)
        return [self._progress(category, grouped) for category in AchievementCategory]

    async def remove_achievement(self, partner_id: str, award_field: str) -> bool:
        removed = await achievements_repo.remove_award(self._redis, partner_id, award_field)
        if removed:
            logger.info("achievement_removed partner_id=%s field=%s", partner_id, award_field)
        return removed

    async def clear_all(self, partner_id: str) -> None:
        await achievements_repo.clear_awards(self._redis, partner_id)
        logger.info("achievements_cleared partner_id=%s", partner_id)
