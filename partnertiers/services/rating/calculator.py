from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Callable

from redis.asyncio import Redis

from partnertiers.core.config import Settings, get_settings
from partnertiers.domain.models import (
    RatingCalculation,
    RatingFactors,
    TierChangeReason,
    TierHistoryEntry,
)
from partnertiers.persistence.repos import history as history_repo
from partnertiers.persistence.repos import partners as partners_repo
from partnertiers.persistence.repos import ratings as ratings_repo
from partnertiers.persistence.repos.tier_history import record_tier_change
from partnertiers.services.achievements.tiers import tier_rank
from partnertiers.services.rating.factors import (
    certification_factor,
    compliance_factor,
    deal_quality_factor,
    engagement_factor,
    revenue_factor,
    score_from_factors,
    tier_from_score,
)
from partnertiers.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RatingCalculator:
    """Compute the weighted partner rating from stored history."""

    def __init__(
        self,
        redis: Redis,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._settings = settings or get_settings()
        self._clock = clock or _utc_now

    async def compute_factors(self, partner_id: str, user_id: str, now: datetime | None = None) -> RatingFactors:
        now = now or self._clock()
        window_start = now - timedelta(days=int(self._settings.engagement_window_days))
        deals, certifications, events, documents, signatures = await asyncio.gather(
            history_repo.list_partner_deals(self._redis, partner_id),
            history_repo.list_user_certifications(self._redis, user_id),
            ratings_repo.list_events_in_range(self._redis, partner_id, window_start, now),
            history_repo.list_legal_documents(self._redis),
            history_repo.list_user_signatures(self._redis, user_id),
        )
        return RatingFactors(
            deal_quality=deal_quality_factor(deals),
            engagement=engagement_factor(events),
            certification=certification_factor(certifications, now),
            compliance=compliance_factor(documents, signatures),
            revenue=revenue_factor(deals),
        )

    async def calculate_rating(self, partner_id: str, user_id: str) -> RatingCalculation:
        now = self._clock()
        factors = await self.compute_factors(partner_id, user_id, now)
        total_score = score_from_factors(factors)
        return RatingCalculation(
            partner_id=partner_id,
            total_score=total_score,
            tier=tier_from_score(total_score),
            factors=factors,
            calculated_at=now,
        )

    async def recalculate_and_persist(self, partner_id: str, user_id: str) -> RatingCalculation:
        """Cache a fresh calculation and write the score to the partner record.

        The stored tier only moves upward here; demotion happens exclusively
        through the annual renewal.
        """
        partner = await partners_repo.require_partner(self._redis, partner_id)
        calculation = await self.calculate_rating(partner_id, user_id)
        await ratings_repo.set_cached_calculation(self._redis, calculation)

        if tier_rank(calculation.tier) > tier_rank(partner.tier):
            await partners_repo.update_partner(
                self._redis,
                partner_id,
                tier=calculation.tier,
                rating=calculation.total_score,
            )
            await record_tier_change(
                self._redis,
                TierHistoryEntry(
                    partner_id=partner_id,
                    tier=calculation.tier,
                    reason=TierChangeReason.ACHIEVEMENT_TRIGGERED,
                    previous_tier=partner.tier,
                    changed_at=calculation.calculated_at,
                ),
            )
            increment_counter("tier_promotions_total")
            logger.info(
                "partner_tier_promoted partner_id=%s previous_tier=%s tier=%s score=%s",
                partner_id,
                partner.tier.value,
                calculation.tier.value,
                calculation.total_score,
            )
        else:
            await partners_repo.update_partner(self._redis, partner_id, rating=calculation.total_score)
        return calculation

    async def get_cached_rating(self, partner_id: str) -> RatingCalculation | None:
        return await ratings_repo.get_cached_calculation(self._redis, partner_id)
