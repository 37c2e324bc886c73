from __future__ import annotations

import pytest

from partnertiers.domain.models import PartnerTier
from partnertiers.workers.renewal_worker import WorkerSettings, renew_partner, run_tier_renewals
from partnertiers.tests.utils.factories import make_partner


@pytest.mark.asyncio
async def test_cron_job_returns_batch_counters(engine, clock) -> None:
    await make_partner(engine.redis, "due", now=clock(), tier=PartnerTier.SILVER, age_days=400)
    await make_partner(engine.redis, "fresh", now=clock(), age_days=5)

    stats = await run_tier_renewals({"engine": engine})

    assert stats == {"processed": 1, "upgraded": 0, "downgraded": 1, "maintained": 0, "errors": 0}


@pytest.mark.asyncio
async def test_single_partner_job_serializes_result(engine, clock) -> None:
    await make_partner(engine.redis, "p1", now=clock(), age_days=5)

    result = await renew_partner({"engine": engine}, "p1")

    assert result == {"partner_id": "p1", "previous_tier": "bronze", "new_tier": "bronze", "meets_requirements": True}


def test_worker_schedules_monthly_sweep() -> None:
    assert [job.name for job in WorkerSettings.cron_jobs] == ["cron:run_tier_renewals"]
    assert WorkerSettings.functions == [renew_partner]
