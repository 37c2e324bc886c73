from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from partnertiers.domain.models import (
    TIER_HIERARCHY,
    AnnualRequirements,
    PartnerTier,
    TierAchievementSet,
    TierBenefits,
    TierRequirement,
)
from partnertiers.services.achievements.definitions import (
    ATTEND_WEBINAR,
    COMPLETE_PROFILE,
    FIRST_CERTIFICATION,
    FIRST_DEAL_WON,
    FIRST_OPPORTUNITY,
    FIVE_OPPORTUNITIES,
    QUICK_DOCUMENT_SIGNING,
    REFER_PARTNER,
    SECOND_CERTIFICATION,
    THIRD_CERTIFICATION,
    TRAINING_MODULE_COMPLETE,
    TWO_DEALS_WON,
)


_BASE_OPTIONAL = (TRAINING_MODULE_COMPLETE, QUICK_DOCUMENT_SIGNING, COMPLETE_PROFILE, ATTEND_WEBINAR)

DEFAULT_TIER_REQUIREMENTS: tuple[TierRequirement, ...] = (
    TierRequirement(
        tier=PartnerTier.BRONZE,
        min_rating=0,
        achievements=TierAchievementSet(required=(), optional=_BASE_OPTIONAL),
        annual_requirements=AnnualRequirements(certified_employees=0, opportunities=0, deals_won=0),
        benefits=TierBenefits(discount_percent=5, features=()),
    ),
    TierRequirement(
        tier=PartnerTier.SILVER,
        min_rating=50,
        achievements=TierAchievementSet(required=(FIRST_CERTIFICATION,), optional=_BASE_OPTIONAL),
        annual_requirements=AnnualRequirements(certified_employees=1, opportunities=0, deals_won=0),
        benefits=TierBenefits(discount_percent=20, features=("priority_support",)),
    ),
    TierRequirement(
        tier=PartnerTier.GOLD,
        min_rating=70,
        achievements=TierAchievementSet(
            required=(FIRST_CERTIFICATION, SECOND_CERTIFICATION, FIRST_OPPORTUNITY, FIRST_DEAL_WON),
            optional=_BASE_OPTIONAL + (REFER_PARTNER,),
        ),
        annual_requirements=AnnualRequirements(certified_employees=2, opportunities=2, deals_won=1),
        benefits=TierBenefits(discount_percent=25, features=("priority_support", "co_marketing")),
    ),
    TierRequirement(
        tier=PartnerTier.PLATINUM,
        min_rating=90,
        achievements=TierAchievementSet(
            required=(
                FIRST_CERTIFICATION,
                SECOND_CERTIFICATION,
                THIRD_CERTIFICATION,
                FIRST_OPPORTUNITY,
                FIRST_DEAL_WON,
                FIVE_OPPORTUNITIES,
                TWO_DEALS_WON,
            ),
            optional=_BASE_OPTIONAL + (REFER_PARTNER,),
        ),
        annual_requirements=AnnualRequirements(certified_employees=3, opportunities=5, deals_won=2),
        benefits=TierBenefits(
            discount_percent=30,
            features=("priority_support", "co_marketing", "dedicated_account_manager"),
        ),
    ),
)


def tier_hierarchy() -> tuple[PartnerTier, ...]:
    return TIER_HIERARCHY


def tier_rank(tier: PartnerTier) -> int:
    return TIER_HIERARCHY.index(tier)


def next_tier(tier: PartnerTier) -> PartnerTier | None:
    # None at the top of the hierarchy.
    index = tier_rank(tier)
    if index == len(TIER_HIERARCHY) - 1:
        return None
    return TIER_HIERARCHY[index + 1]


def previous_tier(tier: PartnerTier) -> PartnerTier | None:
    # None at the bottom of the hierarchy.
    index = tier_rank(tier)
    if index == 0:
        return None
    return TIER_HIERARCHY[index - 1]


class TierRulesTable:
    """Per-tier requirements keyed by tier; immutable once built."""

    def __init__(self, requirements: Mapping[PartnerTier, TierRequirement]) -> None:
        missing = [tier.value for tier in TIER_HIERARCHY if tier not in requirements]
        if missing:
            raise ValueError(f"tier requirements missing for: {', '.join(missing)}")
        self._table: Mapping[PartnerTier, TierRequirement] = MappingProxyType(dict(requirements))

    def requirement(self, tier: PartnerTier) -> TierRequirement:
        return self._table[tier]

    def min_rating(self, tier: PartnerTier) -> float:
        return self._table[tier].min_rating

    def discount(self, tier: PartnerTier) -> int:
        return self._table[tier].benefits.discount_percent

    def benefits(self, tier: PartnerTier) -> tuple[str, ...]:
        return self._table[tier].benefits.features

    def all(self) -> list[TierRequirement]:
        return [self._table[tier] for tier in TIER_HIERARCHY]

    def as_mapping(self) -> Mapping[PartnerTier, TierRequirement]:
        return self._table


def default_tier_rules() -> TierRulesTable:
    return TierRulesTable({requirement.tier: requirement for requirement in DEFAULT_TIER_REQUIREMENTS})
