from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from types import MappingProxyType
from typing import Any, Callable, Mapping
from uuid import uuid4

from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import AchievementSideEffectError
from partnertiers.domain.models import AnnualMetric, RatingEvent, RatingEventType
from partnertiers.persistence.repos import ratings as ratings_repo
from partnertiers.persistence.repos.annual_progress import increment_annual_metric
from partnertiers.services.achievements.triggers import AchievementTriggers
from partnertiers.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

# Points are fixed per event type; callers never supply them.
EVENT_POINTS: Mapping[RatingEventType, int] = MappingProxyType(
    {
        RatingEventType.COPILOT_SESSION_COMPLETED: 2,
        RatingEventType.TRAINING_MODULE_COMPLETED: 3,
        RatingEventType.CERTIFICATION_EARNED: 10,
        RatingEventType.DEAL_CLOSED_WON: 15,
        RatingEventType.MEDDIC_SCORE_IMPROVED: 1,
        RatingEventType.DEAL_CLOSED_LOST_POOR_QUALIFICATION: -10,
        RatingEventType.CERTIFICATION_EXPIRED: -5,
        RatingEventType.LEGAL_EXPIRED: -8,
        RatingEventType.DEAL_STALE_30_DAYS: -3,
        RatingEventType.LOGIN_INACTIVE_30_DAYS: -2,
    }
)

ANNUAL_METRIC_FOR_EVENT: Mapping[RatingEventType, AnnualMetric] = MappingProxyType(
    {
        RatingEventType.CERTIFICATION_EARNED: AnnualMetric.CERTIFICATIONS,
        RatingEventType.DEAL_CLOSED_WON: AnnualMetric.DEALS_WON,
    }
)

SIDE_EFFECT_MODES = ("background", "inline")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_event_type(value: str | RatingEventType) -> RatingEventType:
    # Reject anything outside the fixed enum before touching the store.
    if isinstance(value, RatingEventType):
        return value
    try:
        return RatingEventType(value)
    except ValueError as exc:
        raise ValueError(f"unknown rating event type: {value}") from exc


class RatingEventLog:
    """Append-only per-partner rating event log.

    Writing an event also bumps the annual counters and then runs achievement
    triggers. Trigger failures are logged and counted but never reach the
    caller of ``log_event``.
    """

    def __init__(
        self,
        redis: Redis,
        triggers: AchievementTriggers,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        side_effect_mode: str | None = None,
    ) -> None:
        self._redis = redis
        self._triggers = triggers
        self._settings = settings or get_settings()
        self._clock = clock or _utc_now
        mode = side_effect_mode or self._settings.achievement_side_effect_mode
        if mode not in SIDE_EFFECT_MODES:
            raise ValueError(f"unsupported side effect mode: {mode}")
        self._side_effect_mode = mode
        self._pending: set[asyncio.Task[None]] = set()

    async def log_event(
        self,
        partner_id: str,
        user_id: str,
        event_type: str | RatingEventType,
        metadata: dict[str, Any] | None = None,
    ) -> RatingEvent:
        resolved = parse_event_type(event_type)
        event = RatingEvent(
            id=uuid4().hex,
            partner_id=partner_id,
            user_id=user_id,
            event_type=resolved,
            points=EVENT_POINTS[resolved],
            metadata=metadata,
            created_at=self._clock(),
        )
        await ratings_repo.append_event(self._redis, event)
        metric = ANNUAL_METRIC_FOR_EVENT.get(resolved)
        if metric is not None:
            await increment_annual_metric(self._redis, partner_id, metric)
        increment_counter("rating_events_logged_total")
        logger.info(
            "rating_event_logged partner_id=%s event_type=%s points=%s",
            partner_id,
            resolved.value,
            event.points,
        )
        await self._schedule_side_effects(event)
        return event

    async def _apply_triggers(self, event: RatingEvent) -> None:
        try:
            await self._triggers.on_rating_event(event)
        except Exception as exc:
            raise AchievementSideEffectError(f"achievement side effects failed for event {event.id}") from exc

    async def _run_side_effects(self, event: RatingEvent) -> None:
        # Best-effort: the event is already durable, so failures stop here.
        try:
            await self._apply_triggers(event)
        except AchievementSideEffectError as exc:
            increment_counter("achievement_side_effect_failures_total")
            logger.error(
                "achievement_side_effect_failed partner_id=%s event_id=%s event_type=%s",
                event.partner_id,
                event.id,
                event.event_type.value,
                exc_info=exc,
            )

    async def _schedule_side_effects(self, event: RatingEvent) -> None:
        if self._side_effect_mode == "inline":
            await self._run_side_effects(event)
            return
        task = asyncio.create_task(self._run_side_effects(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        # Await background side effects before shutdown or assertions.
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def list_events(self, partner_id: str, limit: int | None = None) -> list[RatingEvent]:
        size = limit if limit is not None else self._settings.rating_event_list_limit
        return await ratings_repo.list_recent_events(self._redis, partner_id, size)

    async def list_events_in_range(self, partner_id: str, start: datetime, end: datetime) -> list[RatingEvent]:
        return await ratings_repo.list_events_in_range(self._redis, partner_id, start, end)

    async def record_login(self, partner_id: str) -> datetime:
        moment = self._clock()
        await ratings_repo.set_last_login(self._redis, partner_id, moment)
        return moment

    async def last_login(self, partner_id: str) -> datetime | None:
        return await ratings_repo.get_last_login(self._redis, partner_id)
