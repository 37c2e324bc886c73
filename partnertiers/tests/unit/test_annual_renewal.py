from __future__ import annotations

from datetime import datetime, timezone

import pytest

from partnertiers.core.errors import RenewalInProgressError
from partnertiers.domain.models import AnnualMetrics, AnnualRequirements, PartnerTier, TierChangeReason
from partnertiers.persistence import keys
from partnertiers.persistence.repos.annual_progress import get_annual_progress
from partnertiers.persistence.repos.partners import get_partner
from partnertiers.persistence.repos.tier_history import list_tier_history
from partnertiers.services.achievements.config import default_rewards_config
from partnertiers.services.achievements.definitions import FIRST_CERTIFICATION, SECOND_CERTIFICATION
from partnertiers.services.tiers.cycle import add_years
from partnertiers.tests.utils.factories import make_partner, set_annual


def test_add_years_handles_leap_day() -> None:
    leap = datetime(2024, 2, 29, 8, 30, tzinfo=timezone.utc)
    assert add_years(leap, 1) == datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)
    assert add_years(leap, 4) == datetime(2028, 2, 29, 8, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_renewal_due_after_anniversary(engine, clock) -> None:
    await make_partner(engine.redis, "young", now=clock(), age_days=364)
    await make_partner(engine.redis, "old", now=clock(), age_days=366)
    assert await engine.renewals.is_renewal_due("young") is False
    assert await engine.renewals.is_renewal_due("old") is True


@pytest.mark.asyncio
async def test_gold_partner_short_on_certifications_drops_to_silver(engine, clock) -> None:
    partner = await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=366)
    await set_annual(engine.redis, "p1", certifications=1, opportunities=3, deals_won=2)
    assert await engine.renewals.is_renewal_due("p1") is True

    result = await engine.renewals.process_annual_renewal("p1")

    assert result.previous_tier == PartnerTier.GOLD
    assert result.new_tier == PartnerTier.SILVER
    assert result.meets_requirements is False
    stored = await get_partner(engine.redis, "p1")
    assert stored.tier == PartnerTier.SILVER
    assert stored.cycle_started_at == add_years(partner.created_at, 1)
    history = await list_tier_history(engine.redis, "p1")
    assert history[0].reason == TierChangeReason.ANNUAL_RENEWAL
    assert history[0].previous_tier == PartnerTier.GOLD
    assert history[0].tier == PartnerTier.SILVER
    assert await engine.eligibility.annual_metrics("p1") == AnnualMetrics()
    # The anchor moved forward, so the same cycle is not due again.
    assert await engine.renewals.is_renewal_due("p1") is False


@pytest.mark.asyncio
async def test_partner_meeting_requirements_keeps_tier(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=400)
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await engine.tracker.award_achievement("p1", SECOND_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=2, opportunities=2, deals_won=1)

    result = await engine.renewals.process_annual_renewal("p1")

    assert result.meets_requirements is True
    assert result.new_tier == PartnerTier.GOLD
    history = await list_tier_history(engine.redis, "p1")
    assert history[0].previous_tier == history[0].tier == PartnerTier.GOLD
    progress = await get_annual_progress(engine.redis, "p1")
    assert all(value == 0 for value in progress.values())


@pytest.mark.asyncio
async def test_certifications_from_last_cycle_do_not_carry_over(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=366)
    await engine.tracker.award_achievement("p1", FIRST_CERTIFICATION)
    await engine.tracker.award_achievement("p1", SECOND_CERTIFICATION)
    await set_annual(engine.redis, "p1", certifications=2, opportunities=2, deals_won=1)

    await engine.renewals.process_annual_renewal("p1")

    metrics = await engine.eligibility.annual_metrics("p1")
    assert metrics.certified_employees == 0
    assert metrics.opportunities == 0
    assert metrics.deals_won == 0
    # Lifetime achievements stay earned, but the new cycle starts from zero.
    assert await engine.tracker.has_achievement("p1", SECOND_CERTIFICATION) is True
    status = await engine.eligibility.check_annual_renewal("p1")
    assert status.currently_meets is False
    assert status.requirements["certified_employees"].current == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("tier", "expected"),
    [
        (PartnerTier.PLATINUM, PartnerTier.GOLD),
        (PartnerTier.GOLD, PartnerTier.SILVER),
        (PartnerTier.SILVER, PartnerTier.BRONZE),
    ],
)
async def test_unmet_requirements_demote_exactly_one_level(engine, clock, tier, expected) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=tier, age_days=366)

    result = await engine.renewals.process_annual_renewal("p1")

    assert result.meets_requirements is False
    assert result.new_tier == expected
    assert (await get_partner(engine.redis, "p1")).tier == expected


@pytest.mark.asyncio
async def test_bronze_failing_requirements_stays_bronze(engine, clock) -> None:
    config = default_rewards_config()
    bronze = config.tier_requirements[PartnerTier.BRONZE].model_copy(
        update={"annual_requirements": AnnualRequirements(certified_employees=1)}
    )
    strict = engine.with_rewards_config(
        config.model_copy(update={"tier_requirements": {**config.tier_requirements, PartnerTier.BRONZE: bronze}})
    )
    await make_partner(strict.redis, "p1", now=clock(), age_days=366)

    result = await strict.renewals.process_annual_renewal("p1")

    assert result.meets_requirements is False
    assert result.new_tier == PartnerTier.BRONZE
    history = await list_tier_history(strict.redis, "p1")
    assert history[0].previous_tier == history[0].tier == PartnerTier.BRONZE


@pytest.mark.asyncio
async def test_batch_counts_and_isolates_failures(engine, clock) -> None:
    await make_partner(engine.redis, "gold_due", now=clock(), tier=PartnerTier.GOLD, age_days=370)
    await make_partner(engine.redis, "silver_due", now=clock(), tier=PartnerTier.SILVER, age_days=380)
    await set_annual(engine.redis, "silver_due", certifications=1)
    await make_partner(engine.redis, "bronze_new", now=clock(), age_days=10)
    # Indexed but without a partner record: fails alone.
    await engine.redis.zadd(keys.all_partners(), {"ghost": 0})

    stats = await engine.renewals.process_all_due_renewals()

    assert stats.processed == 2
    assert stats.downgraded == 1
    assert stats.maintained == 1
    assert stats.upgraded == 0
    assert stats.errors == 1
    assert (await get_partner(engine.redis, "gold_due")).tier == PartnerTier.SILVER
    assert (await get_partner(engine.redis, "silver_due")).tier == PartnerTier.SILVER
    assert await engine.redis.exists(keys.renewal_lock("gold_due")) == 0

    again = await engine.renewals.process_all_due_renewals()
    assert again.processed == 0
    assert again.errors == 1


@pytest.mark.asyncio
async def test_locked_partner_is_skipped(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=370)
    await engine.redis.set(keys.renewal_lock("p1"), "other-worker", ex=60)

    stats = await engine.renewals.process_all_due_renewals()

    assert stats.processed == 0
    assert (await get_partner(engine.redis, "p1")).tier == PartnerTier.GOLD
    assert await engine.redis.get(keys.renewal_lock("p1")) == "other-worker"


@pytest.mark.asyncio
async def test_early_forced_renewal_starts_cycle_now(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.SILVER, age_days=20)

    result = await engine.renewals.force_renewal("p1")

    assert result.new_tier == PartnerTier.BRONZE
    stored = await get_partner(engine.redis, "p1")
    assert stored.cycle_started_at == clock()
    assert await engine.renewals.is_renewal_due("p1") is False
    status = await engine.eligibility.check_annual_renewal("p1")
    assert status.next_renewal_date == add_years(clock(), 1)
    assert await engine.redis.exists(keys.renewal_lock("p1")) == 0


@pytest.mark.asyncio
async def test_forced_renewal_respects_running_lease(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), tier=PartnerTier.GOLD, age_days=370)
    await engine.redis.set(keys.renewal_lock("p1"), "batch-run", ex=60)

    with pytest.raises(RenewalInProgressError):
        await engine.renewals.force_renewal("p1")

    assert (await get_partner(engine.redis, "p1")).tier == PartnerTier.GOLD
    assert await engine.redis.get(keys.renewal_lock("p1")) == "batch-run"
