from __future__ import annotations

from datetime import datetime, timezone

import pytest

from partnertiers.core.errors import PartnerNotFoundError
from partnertiers.domain.models import PartnerTier
from partnertiers.services.achievements.definitions import (
    FIRST_CERTIFICATION,
    FIRST_DEAL_WON,
    FIRST_OPPORTUNITY,
    SECOND_CERTIFICATION,
)
from partnertiers.tests.utils.factories import cache_score, make_partner, set_annual


@pytest.mark.asyncio
async def test_platinum_has_no_next_tier(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.PLATINUM, rating=99)

    eligibility = await engine.eligibility.calculate_tier_eligibility("p1")

    assert eligibility.eligible is False
    assert eligibility.next_tier is None
    assert eligibility.blockers.achievements == []
    assert await engine.eligibility.get_next_tier_requirements("p1") is None


@pytest.mark.asyncio
async def test_new_partner_is_blocked_on_every_axis(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock())

    eligibility = await engine.eligibility.calculate_tier_eligibility("p1")

    assert eligibility.current_tier == PartnerTier.BRONZE
    assert eligibility.next_tier == PartnerTier.SILVER
    assert eligibility.eligible is False
    assert eligibility.blockers.rating is True
    assert eligibility.blockers.achievements == [FIRST_CERTIFICATION]
    assert eligibility.blockers.annual_requirements is True


@pytest.mark.asyncio
async def test_cached_rating_and_certification_make_bronze_eligible(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock())
    await cache_score(engine.redis, "p1", 60, now=clock())
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=1)

    eligibility = await engine.eligibility.calculate_tier_eligibility("p1")

    assert eligibility.eligible is True
    assert eligibility.blockers.rating is False
    assert eligibility.blockers.achievements == []
    assert eligibility.blockers.annual_requirements is False


@pytest.mark.asyncio
async def test_rating_falls_back_to_partner_record(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), rating=55)
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=1)

    eligibility = await engine.eligibility.calculate_tier_eligibility("p1")

    assert eligibility.blockers.rating is False
    assert eligibility.eligible is True


@pytest.mark.asyncio
async def test_next_tier_requirements_breakdown(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.SILVER)
    await cache_score(engine.redis, "p1", 72, now=clock())
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=1, opportunities=3)

    requirements = await engine.eligibility.get_next_tier_requirements("p1")

    assert requirements.tier == PartnerTier.GOLD
    assert requirements.rating.current == 72
    assert requirements.rating.required == 70
    assert requirements.rating.met is True
    assert [item.definition.id for item in requirements.achievements.completed] == [FIRST_CERTIFICATION]
    assert [item.id for item in requirements.achievements.remaining] == [
        SECOND_CERTIFICATION,
        FIRST_OPPORTUNITY,
        FIRST_DEAL_WON,
    ]
    annual = requirements.annual_requirements
    assert annual["certified_employees"].current == 1
    assert annual["certified_employees"].met is False
    assert annual["opportunities"].met is True
    assert annual["deals_won"].required == 1
    assert annual["deals_won"].met is False


@pytest.mark.asyncio
async def test_annual_renewal_status_for_current_tier(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=100)

    status = await engine.eligibility.check_annual_renewal("p1")

    assert status.next_renewal_date == datetime(2026, 12, 5, 12, 0, tzinfo=timezone.utc)
    assert status.days_until_renewal == 265
    assert status.currently_meets is False
    assert status.requirements["certified_employees"].required == 2
    assert status.requirements["opportunities"].required == 2
    assert status.requirements["deals_won"].current == 0


@pytest.mark.asyncio
async def test_days_until_renewal_rounds_up(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), age_days=100)
    clock.advance(hours=1)
    status = await engine.eligibility.check_annual_renewal("p1")
    assert status.days_until_renewal == 265
    # Bronze has no annual requirements.
    assert status.currently_meets is True


@pytest.mark.asyncio
async def test_unknown_partner_raises(engine) -> None:
    with pytest.raises(PartnerNotFoundError):
        await engine.eligibility.calculate_tier_eligibility("missing")
    with pytest.raises(PartnerNotFoundError):
        await engine.eligibility.check_annual_renewal("missing")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("score", "award", "certifications", "blocked_on"),
    [
        (40, True, 1, "rating"),
        (60, False, 1, "achievements"),
        (60, True, 0, "annual_requirements"),
    ],
)
async def test_single_unmet_condition_blocks_promotion(
    engine, clock, score, award, certifications, blocked_on
) -> None:
    await make_partner(engine.redis, "p1", now=clock())
    await cache_score(engine.redis, "p1", score, now=clock())
    if award:
        await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=certifications)

    eligibility = await engine.eligibility.calculate_tier_eligibility("p1")

    assert eligibility.eligible is False
    blockers = eligibility.blockers
    assert blockers.rating is (blocked_on == "rating")
    assert bool(blockers.achievements) is (blocked_on == "achievements")
    assert blockers.annual_requirements is (blocked_on == "annual_requirements")


@pytest.mark.asyncio
async def test_certified_employees_count_this_cycle_only(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock())
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)

    assert (await engine.eligibility.annual_metrics("p1")).certified_employees == 0

    await engine.events.log_event("p1", "u1", "CERTIFICATION_EARNED")

    assert (await engine.eligibility.annual_metrics("p1")).certified_employees == 1
