from __future__ import annotations

import logging

from redis.asyncio import Redis

from partnertiers.domain.models import AnnualMetric, RatingEvent, RatingEventType
from partnertiers.persistence.repos.annual_progress import increment_annual_metric
from partnertiers.services.achievements.definitions import (
    CERTIFICATION_SEQUENCE,
    DEALS_WON_SEQUENCE,
    FIRST_OPPORTUNITY,
    FIVE_OPPORTUNITIES,
    TRAINING_MODULE_COMPLETE,
)
from partnertiers.services.achievements.tracker import AchievementTracker


logger = logging.getLogger(__name__)

# Opportunity milestones checked with >= so a missed award is caught up on the next registration.
OPPORTUNITY_MILESTONES: tuple[tuple[int, str], ...] = ((1, FIRST_OPPORTUNITY), (5, FIVE_OPPORTUNITIES))


class AchievementTriggers:
    """Map upstream activity to achievement awards."""

    def __init__(self, redis: Redis, tracker: AchievementTracker) -> None:
        self._redis = redis
        self._tracker = tracker

    async def _award_next_in_sequence(self, partner_id: str, sequence: tuple[str, ...]) -> str | None:
        # Award the first unearned id; a concurrent award of the same id moves on to the next one.
        earned = await self._tracker.earned_ids(partner_id)
        for achievement_id in sequence:
            if achievement_id in earned:
                continue
            if await self._tracker.award_achievement(partner_id, achievement_id):
                return achievement_id
        return None

    async def on_rating_event(self, event: RatingEvent) -> list[str]:
        awarded: list[str] = []
        if event.event_type == RatingEventType.CERTIFICATION_EARNED:
            achievement_id = await self._award_next_in_sequence(event.partner_id, CERTIFICATION_SEQUENCE)
            if achievement_id:
                awarded.append(achievement_id)
        elif event.event_type == RatingEventType.DEAL_CLOSED_WON:
            achievement_id = await self._award_next_in_sequence(event.partner_id, DEALS_WON_SEQUENCE)
            if achievement_id:
                awarded.append(achievement_id)
        elif event.event_type == RatingEventType.TRAINING_MODULE_COMPLETED:
            if await self._tracker.award_achievement(event.partner_id, TRAINING_MODULE_COMPLETE):
                awarded.append(TRAINING_MODULE_COMPLETE)
        if awarded:
            logger.info(
                "achievement_triggers_applied partner_id=%s event_type=%s awarded=%s",
                event.partner_id,
                event.event_type.value,
                ",".join(awarded),
            )
        return awarded

    async def record_opportunity_registered(self, partner_id: str) -> list[str]:
        count = await increment_annual_metric(self._redis, partner_id, AnnualMetric.OPPORTUNITIES)
        earned = await self._tracker.earned_ids(partner_id)
        awarded: list[str] = []
        for threshold, achievement_id in OPPORTUNITY_MILESTONES:
            if count >= threshold and achievement_id not in earned:
                if await self._tracker.award_achievement(partner_id, achievement_id):
                    awarded.append(achievement_id)
        logger.info("opportunity_registered partner_id=%s opportunities=%s", partner_id, count)
        return awarded
