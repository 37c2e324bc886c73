from __future__ import annotations

from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping

from partnertiers.core.numeric import clamp, round_half_up
from partnertiers.domain.models import (
    Certification,
    CertificationStatus,
    Deal,
    DealStatus,
    LegalDocument,
    LegalSignature,
    PartnerTier,
    RatingEvent,
    RatingEventType,
    RatingFactors,
)


# Weights sum to 1.0 so the weighted total stays on the 0..100 scale.
FACTOR_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "deal_quality": 0.30,
        "engagement": 0.25,
        "certification": 0.20,
        "compliance": 0.15,
        "revenue": 0.10,
    }
)

# Highest threshold first; the first one met wins.
TIER_THRESHOLDS: tuple[tuple[PartnerTier, int], ...] = (
    (PartnerTier.PLATINUM, 90),
    (PartnerTier.GOLD, 70),
    (PartnerTier.SILVER, 50),
    (PartnerTier.BRONZE, 0),
)

NEUTRAL_DEAL_QUALITY = 50.0
ENGAGEMENT_BASE = 50
COPILOT_POINTS, COPILOT_CAP = 5, 25
TRAINING_POINTS, TRAINING_CAP = 10, 20
INACTIVITY_PENALTY = 10
REVENUE_BASE = 30.0
REVENUE_PER_WON_DEAL, REVENUE_DEAL_CAP = 15, 70
# (minimum average population, bonus) from largest to smallest.
POPULATION_BONUSES: tuple[tuple[int, int], ...] = ((1_000_000, 30), (500_000, 20), (100_000, 10))
CERTIFICATION_STEPS: tuple[float, ...] = (20.0, 60.0, 80.0, 100.0)

_REVIEWED_STATUSES = frozenset({DealStatus.APPROVED, DealStatus.WON, DealStatus.LOST})
_CLOSED_STATUSES = frozenset({DealStatus.WON, DealStatus.LOST})


def deal_quality_factor(deals: list[Deal]) -> float:
    """40% approval rate, 40% win rate, 20% partner-generated lead rate."""
    if not deals:
        return NEUTRAL_DEAL_QUALITY
    total = len(deals)
    approval_rate = sum(1 for deal in deals if deal.status in _REVIEWED_STATUSES) / total
    closed = [deal for deal in deals if deal.status in _CLOSED_STATUSES]
    won = sum(1 for deal in closed if deal.status == DealStatus.WON)
    win_rate = won / len(closed) if closed else 0.0
    lead_rate = sum(1 for deal in deals if deal.partner_generated_lead) / total
    return clamp(approval_rate * 40 + win_rate * 40 + lead_rate * 20)


def engagement_factor(events: Iterable[RatingEvent]) -> float:
    """Score activity inside the trailing window; callers pass only in-window events."""
    copilot = training = inactive = 0
    for event in events:
        if event.event_type == RatingEventType.COPILOT_SESSION_COMPLETED:
            copilot += 1
        elif event.event_type == RatingEventType.TRAINING_MODULE_COMPLETED:
            training += 1
        elif event.event_type == RatingEventType.LOGIN_INACTIVE_30_DAYS:
            inactive += 1
    score = ENGAGEMENT_BASE
    score += min(copilot * COPILOT_POINTS, COPILOT_CAP)
    score += min(training * TRAINING_POINTS, TRAINING_CAP)
    score -= inactive * INACTIVITY_PENALTY
    return clamp(score)


def certification_factor(certifications: list[Certification], now: datetime) -> float:
    # Step function over active, unexpired certifications.
    active = sum(
        1
        for certification in certifications
        if certification.status == CertificationStatus.ACTIVE and certification.expires_at > now
    )
    return CERTIFICATION_STEPS[min(active, len(CERTIFICATION_STEPS) - 1)]


def compliance_factor(documents: list[LegalDocument], signatures: list[LegalSignature]) -> float:
    required = [document for document in documents if document.required_for_deals]
    if not required:
        return 100.0
    signed_ids = {signature.document_id for signature in signatures}
    signed = sum(1 for document in required if document.id in signed_ids)
    return clamp(signed / len(required) * 100)


def revenue_factor(deals: list[Deal]) -> float:
    won = [deal for deal in deals if deal.status == DealStatus.WON]
    if not won:
        return REVENUE_BASE
    score = min(len(won) * REVENUE_PER_WON_DEAL, REVENUE_DEAL_CAP)
    average_population = sum(deal.population for deal in won) / len(won)
    for minimum, bonus in POPULATION_BONUSES:
        if average_population >= minimum:
            score += bonus
            break
    return clamp(score)


def score_from_factors(factors: RatingFactors) -> int:
    weighted = sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items())
    return round_half_up(weighted)


def tier_from_score(score: float) -> PartnerTier:
    for tier, minimum in TIER_THRESHOLDS:
        if score >= minimum:
            return tier
    return PartnerTier.BRONZE
