from __future__ import annotations

from datetime import datetime, timezone
import logging
import math
from typing import Callable

from redis.asyncio import Redis

from partnertiers.domain.models import (
    AnnualMetric,
    AnnualMetrics,
    AnnualRequirements,
    MetricProgress,
    NextTierAchievements,
    NextTierRequirements,
    Partner,
    RenewalRequirement,
    RenewalStatus,
    TierBlockers,
    TierEligibility,
)
from partnertiers.persistence.repos import partners as partners_repo
from partnertiers.persistence.repos import ratings as ratings_repo
from partnertiers.persistence.repos.annual_progress import get_annual_progress
from partnertiers.services.achievements.tiers import TierRulesTable, next_tier
from partnertiers.services.achievements.tracker import AchievementTracker
from partnertiers.services.tiers.cycle import next_renewal_date


logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def metrics_meet(metrics: AnnualMetrics, requirements: AnnualRequirements) -> bool:
    return (
        metrics.certified_employees >= requirements.certified_employees
        and metrics.opportunities >= requirements.opportunities
        and metrics.deals_won >= requirements.deals_won
    )


class TierEligibilityEngine:
    """Answer "can this partner move up" and "will this partner keep its tier"."""

    def __init__(
        self,
        redis: Redis,
        tracker: AchievementTracker,
        rules: TierRulesTable,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._tracker = tracker
        self._rules = rules
        self._clock = clock or _utc_now

    async def current_rating(self, partner: Partner) -> float:
        # Cached calculation first, then the score stored on the partner record.
        cached = await ratings_repo.get_cached_calculation(self._redis, partner.id)
        if cached is not None:
            return float(cached.total_score)
        return float(partner.rating or 0)

    async def annual_metrics(self, partner_id: str) -> AnnualMetrics:
        # Every figure is cycle-scoped; certified employees come from certifications earned this cycle.
        progress = await get_annual_progress(self._redis, partner_id)
        return AnnualMetrics(
            certified_employees=progress[AnnualMetric.CERTIFICATIONS],
            opportunities=progress[AnnualMetric.OPPORTUNITIES],
            deals_won=progress[AnnualMetric.DEALS_WON],
        )

    async def calculate_tier_eligibility(self, partner_id: str) -> TierEligibility:
        partner = await partners_repo.require_partner(self._redis, partner_id)
        target = next_tier(partner.tier)
        if target is None:
            return TierEligibility(current_tier=partner.tier, eligible=False, next_tier=None, blockers=TierBlockers())

        requirement = self._rules.requirement(target)
        earned = await self._tracker.earned_ids(partner_id)
        rating = await self.current_rating(partner)
        metrics = await self.annual_metrics(partner_id)
        blockers = TierBlockers(
            rating=rating < requirement.min_rating,
            achievements=[aid for aid in requirement.achievements.required if aid not in earned],
            annual_requirements=not metrics_meet(metrics, requirement.annual_requirements),
        )
        eligible = not (blockers.rating or blockers.achievements or blockers.annual_requirements)
        logger.debug(
            "tier_eligibility_evaluated partner_id=%s tier=%s next_tier=%s eligible=%s",
            partner_id,
            partner.tier.value,
            target.value,
            eligible,
        )
        return TierEligibility(current_tier=partner.tier, eligible=eligible, next_tier=target, blockers=blockers)

    async def get_next_tier_requirements(self, partner_id: str) -> NextTierRequirements | None:
        partner = await partners_repo.require_partner(self._redis, partner_id)
        target = next_tier(partner.tier)
        if target is None:
            return None

        requirement = self._rules.requirement(target)
        earned = await self._tracker.list_earned_achievements(partner_id)
        earned_ids = {item.definition.id for item in earned}
        required = requirement.achievements.required
        completed = [item for item in earned if item.definition.id in required]
        remaining = [
            self._tracker.catalog.require(achievement_id)
            for achievement_id in required
            if achievement_id not in earned_ids
        ]
        rating = await self.current_rating(partner)
        metrics = await self.annual_metrics(partner_id)
        annual = requirement.annual_requirements
        return NextTierRequirements(
            tier=target,
            rating=MetricProgress(current=rating, required=requirement.min_rating, met=rating >= requirement.min_rating),
            achievements=NextTierAchievements(completed=completed, remaining=remaining),
            annual_requirements={
                "certified_employees": MetricProgress(
                    current=metrics.certified_employees,
                    required=annual.certified_employees,
                    met=metrics.certified_employees >= annual.certified_employees,
                ),
                "opportunities": MetricProgress(
                    current=metrics.opportunities,
                    required=annual.opportunities,
                    met=metrics.opportunities >= annual.opportunities,
                ),
                "deals_won": MetricProgress(
                    current=metrics.deals_won,
                    required=annual.deals_won,
                    met=metrics.deals_won >= annual.deals_won,
                ),
            },
        )

    async def check_annual_renewal(self, partner_id: str) -> RenewalStatus:
        # Renewal is judged against the partner's current tier, not the next one.
        partner = await partners_repo.require_partner(self._redis, partner_id)
        renewal_date = next_renewal_date(partner)
        seconds_left = (renewal_date - self._clock()).total_seconds()
        annual = self._rules.requirement(partner.tier).annual_requirements
        metrics = await self.annual_metrics(partner_id)
        return RenewalStatus(
            next_renewal_date=renewal_date,
            days_until_renewal=math.ceil(seconds_left / _SECONDS_PER_DAY),
            currently_meets=metrics_meet(metrics, annual),
            requirements={
                "certified_employees": RenewalRequirement(
                    current=metrics.certified_employees, required=annual.certified_employees
                ),
                "opportunities": RenewalRequirement(current=metrics.opportunities, required=annual.opportunities),
                "deals_won": RenewalRequirement(current=metrics.deals_won, required=annual.deals_won),
            },
        )
