from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable
from uuid import uuid4

from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import RenewalInProgressError
from partnertiers.domain.models import (
    PartnerTier,
    RenewalResult,
    RenewalStats,
    TierChangeReason,
    TierHistoryEntry,
)
from partnertiers.persistence import keys
from partnertiers.persistence.redis import store_call
from partnertiers.persistence.repos import partners as partners_repo
from partnertiers.persistence.repos.annual_progress import reset_annual_progress
from partnertiers.persistence.repos.tier_history import record_tier_change
from partnertiers.services.achievements.tiers import previous_tier
from partnertiers.services.telemetry import increment_counter
from partnertiers.services.tiers.cycle import next_renewal_date
from partnertiers.services.tiers.eligibility import TierEligibilityEngine


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RenewalLease:
    partner_id: str
    token: str


class AnnualRenewalProcessor:
    """Apply the once-per-cycle renewal transition.

    A partner keeps its tier when the current tier's annual requirements are
    met (or it is already bronze); otherwise it drops exactly one level. Every
    renewal is recorded and resets the annual counters. The cycle anchor moves
    to the anniversary just renewed, or to now for an early renewal, so the
    same cycle cannot be renewed twice.
    """

    def __init__(
        self,
        redis: Redis,
        eligibility: TierEligibilityEngine,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._eligibility = eligibility
        self._settings = settings or get_settings()
        self._clock = clock or _utc_now

    async def is_renewal_due(self, partner_id: str) -> bool:
        # Recomputed from the stored anchor on every check; nothing counts down.
        partner = await partners_repo.require_partner(self._redis, partner_id)
        return self._clock() >= next_renewal_date(partner)

    async def process_annual_renewal(self, partner_id: str) -> RenewalResult:
        partner = await partners_repo.require_partner(self._redis, partner_id)
        status = await self._eligibility.check_annual_renewal(partner_id)
        current = partner.tier
        new_tier = current
        if not status.currently_meets and current != PartnerTier.BRONZE:
            new_tier = previous_tier(current) or current

        changed_at = self._clock()
        # Early (forced) renewals start the new cycle now instead of at a future anniversary.
        anchor = min(next_renewal_date(partner), changed_at)
        await partners_repo.update_partner(
            self._redis,
            partner_id,
            tier=new_tier,
            cycle_started_at=anchor,
        )
        await record_tier_change(
            self._redis,
            TierHistoryEntry(
                partner_id=partner_id,
                tier=new_tier,
                reason=TierChangeReason.ANNUAL_RENEWAL,
                previous_tier=current,
                changed_at=changed_at,
            ),
        )
        await reset_annual_progress(self._redis, partner_id)

        if new_tier != current:
            increment_counter("tier_demotions_total")
        increment_counter("renewals_processed_total")
        logger.info(
            "annual_renewal_processed partner_id=%s previous_tier=%s tier=%s meets_requirements=%s",
            partner_id,
            current.value,
            new_tier.value,
            status.currently_meets,
        )
        return RenewalResult(
            partner_id=partner_id,
            previous_tier=current,
            new_tier=new_tier,
            meets_requirements=status.currently_meets,
        )

    async def acquire_lease(self, partner_id: str) -> RenewalLease | None:
        # One renewal per partner at a time across workers; the TTL frees leases of crashed runs.
        token = uuid4().hex
        ttl_s = max(5, int(self._settings.renewal_lock_ttl_s))
        with store_call("acquire_renewal_lease"):
            acquired = await self._redis.set(keys.renewal_lock(partner_id), token, nx=True, ex=ttl_s)
        if not acquired:
            return None
        return RenewalLease(partner_id=partner_id, token=token)

    async def release_lease(self, lease: RenewalLease) -> None:
        # Release only if this run still owns the lease.
        key = keys.renewal_lock(lease.partner_id)
        with store_call("release_renewal_lease"):
            current = await self._redis.get(key)
            if current == lease.token:
                await self._redis.delete(key)

    async def _renew_if_due(self, partner_id: str) -> RenewalResult | None:
        lease = await self.acquire_lease(partner_id)
        if lease is None:
            logger.info("annual_renewal_skipped_locked partner_id=%s", partner_id)
            return None
        try:
            # Checked inside the lease so a concurrent run that already advanced the cycle is seen.
            if not await self.is_renewal_due(partner_id):
                return None
            return await self.process_annual_renewal(partner_id)
        finally:
            await self.release_lease(lease)

    async def force_renewal(self, partner_id: str) -> RenewalResult:
        """Renew one partner now, whether or not its anniversary has passed."""
        lease = await self.acquire_lease(partner_id)
        if lease is None:
            raise RenewalInProgressError(partner_id)
        try:
            return await self.process_annual_renewal(partner_id)
        finally:
            await self.release_lease(lease)

    async def process_all_due_renewals(self) -> RenewalStats:
        stats = RenewalStats()
        partner_ids = await partners_repo.list_partner_ids(self._redis)
        semaphore = asyncio.Semaphore(max(1, int(self._settings.renewal_max_concurrency)))

        async def _run(partner_id: str) -> None:
            async with semaphore:
                try:
                    result = await self._renew_if_due(partner_id)
                except Exception as exc:
                    # One failing partner never aborts the batch.
                    stats.errors += 1
                    increment_counter("renewal_errors_total")
                    logger.error("annual_renewal_failed partner_id=%s", partner_id, exc_info=exc)
                    return
            if result is None:
                return
            stats.processed += 1
            if result.meets_requirements or result.new_tier == result.previous_tier:
                stats.maintained += 1
            else:
                stats.downgraded += 1

        await asyncio.gather(*(_run(partner_id) for partner_id in partner_ids))
        logger.info(
            "annual_renewals_completed processed=%s downgraded=%s maintained=%s errors=%s",
            stats.processed,
            stats.downgraded,
            stats.maintained,
            stats.errors,
        )
        return stats
