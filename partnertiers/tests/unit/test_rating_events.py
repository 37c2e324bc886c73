from __future__ import annotations

from datetime import timedelta

import pytest

from partnertiers.domain.models import AnnualMetric, RatingEventType
from partnertiers.persistence import keys
from partnertiers.persistence.repos.annual_progress import get_annual_progress
from partnertiers.services.achievements.definitions import (
    FIRST_CERTIFICATION,
    FIRST_DEAL_WON,
    SECOND_CERTIFICATION,
    THIRD_CERTIFICATION,
    TRAINING_MODULE_COMPLETE,
    TWO_DEALS_WON,
)
from partnertiers.services.rating.events import EVENT_POINTS, RatingEventLog
from partnertiers.services.telemetry import get_counters


class _FailingTriggers:
    def __init__(self) -> None:
        self.calls = 0

    async def on_rating_event(self, event) -> list[str]:  # noqa: ANN001
        self.calls += 1
        raise RuntimeError("award store exploded")


def test_event_points_table_is_fixed() -> None:
    assert set(EVENT_POINTS) == set(RatingEventType)
    assert EVENT_POINTS[RatingEventType.DEAL_CLOSED_WON] == 15
    assert EVENT_POINTS[RatingEventType.LEGAL_EXPIRED] == -8


@pytest.mark.asyncio
async def test_certification_events_award_in_sequence(engine) -> None:
    for _ in range(4):
        event = await engine.events.log_event("p1", "u1", RatingEventType.CERTIFICATION_EARNED)
        assert event.points == 10

    earned = await engine.tracker.earned_ids("p1")
    assert {FIRST_CERTIFICATION, SECOND_CERTIFICATION, THIRD_CERTIFICATION} <= earned
    progress = await get_annual_progress(engine.redis, "p1")
    assert progress[AnnualMetric.CERTIFICATIONS] == 4


@pytest.mark.asyncio
async def test_deal_won_events_award_deal_milestones(engine) -> None:
    await engine.events.log_event("p1", "u1", "DEAL_CLOSED_WON")
    assert await engine.tracker.earned_ids("p1") == {FIRST_DEAL_WON}
    await engine.events.log_event("p1", "u1", "DEAL_CLOSED_WON")
    assert await engine.tracker.earned_ids("p1") == {FIRST_DEAL_WON, TWO_DEALS_WON}
    progress = await get_annual_progress(engine.redis, "p1")
    assert progress[AnnualMetric.DEALS_WON] == 2


@pytest.mark.asyncio
async def test_training_events_award_repeatable_training(engine) -> None:
    await engine.events.log_event("p1", "u1", RatingEventType.TRAINING_MODULE_COMPLETED)
    await engine.events.log_event("p1", "u1", RatingEventType.TRAINING_MODULE_COMPLETED)
    assert await engine.tracker.count_achievement("p1", TRAINING_MODULE_COMPLETE) == 2


@pytest.mark.asyncio
async def test_unknown_event_type_is_rejected(engine, redis) -> None:
    with pytest.raises(ValueError):
        await engine.events.log_event("p1", "u1", "FREE_POINTS")
    assert await redis.exists(keys.rating_events("p1")) == 0


@pytest.mark.asyncio
async def test_side_effect_failure_does_not_reach_caller(redis, settings, clock) -> None:
    triggers = _FailingTriggers()
    log = RatingEventLog(redis, triggers, settings=settings, clock=clock, side_effect_mode="inline")

    event = await log.log_event("p1", "u1", RatingEventType.CERTIFICATION_EARNED)

    assert triggers.calls == 1
    assert [stored.id for stored in await log.list_events("p1")] == [event.id]
    assert get_counters()["achievement_side_effect_failures_total"] == 1


@pytest.mark.asyncio
async def test_background_side_effects_complete_on_drain(redis, settings, clock, engine) -> None:
    log = RatingEventLog(redis, engine.triggers, settings=settings, clock=clock, side_effect_mode="background")
    await log.log_event("p1", "u1", RatingEventType.CERTIFICATION_EARNED)
    await log.drain()
    assert await engine.tracker.has_achievement("p1", FIRST_CERTIFICATION) is True


@pytest.mark.asyncio
async def test_background_failures_are_logged_not_raised(redis, settings, clock) -> None:
    log = RatingEventLog(redis, _FailingTriggers(), settings=settings, clock=clock, side_effect_mode="background")
    await log.log_event("p1", "u1", RatingEventType.DEAL_CLOSED_WON)
    await log.drain()
    assert get_counters()["achievement_side_effect_failures_total"] == 1


def test_invalid_side_effect_mode(redis, settings) -> None:
    with pytest.raises(ValueError):
        RatingEventLog(redis, _FailingTriggers(), settings=settings, side_effect_mode="sometimes")


@pytest.mark.asyncio
async def test_event_listing_order_and_range(engine, clock) -> None:
    start = clock()
    first = await engine.events.log_event("p1", "u1", RatingEventType.COPILOT_SESSION_COMPLETED)
    clock.advance(days=1)
    second = await engine.events.log_event("p1", "u1", RatingEventType.MEDDIC_SCORE_IMPROVED)
    clock.advance(days=1)
    third = await engine.events.log_event("p1", "u1", RatingEventType.DEAL_STALE_30_DAYS)

    newest_first = await engine.events.list_events("p1")
    assert [event.id for event in newest_first] == [third.id, second.id, first.id]
    assert [event.id for event in await engine.events.list_events("p1", limit=1)] == [third.id]

    in_range = await engine.events.list_events_in_range("p1", start, start + timedelta(days=1))
    assert [event.id for event in in_range] == [first.id, second.id]


@pytest.mark.asyncio
async def test_login_tracking(engine, clock) -> None:
    assert await engine.events.last_login("p1") is None
    recorded = await engine.events.record_login("p1")
    assert await engine.events.last_login("p1") == recorded == clock()
