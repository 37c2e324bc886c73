from __future__ import annotations

from datetime import datetime, timedelta, timezone
import random

import pytest

from partnertiers.core.numeric import round_half_up
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
from partnertiers.services.achievements.tiers import tier_rank
from partnertiers.services.rating.factors import (
    FACTOR_WEIGHTS,
    certification_factor,
    compliance_factor,
    deal_quality_factor,
    engagement_factor,
    revenue_factor,
    score_from_factors,
    tier_from_score,
)


NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def _deal(index: int, status: DealStatus, *, population: int = 0, lead: bool = False) -> Deal:
    return Deal(id=f"d{index}", partner_id="p1", status=status, population=population, partner_generated_lead=lead)


def _event(event_type: RatingEventType, index: int = 0) -> RatingEvent:
    return RatingEvent(
        id=f"e{event_type.value}{index}",
        partner_id="p1",
        user_id="u1",
        event_type=event_type,
        points=0,
        created_at=NOW,
    )


def _cert(index: int, status: CertificationStatus, expires_in_days: int) -> Certification:
    return Certification(
        id=f"c{index}",
        user_id="u1",
        status=status,
        expires_at=NOW + timedelta(days=expires_in_days),
    )


def test_weights_sum_to_one() -> None:
    assert sum(FACTOR_WEIGHTS.values()) == pytest.approx(1.0)


def test_deal_quality_neutral_without_deals() -> None:
    assert deal_quality_factor([]) == 50


def test_deal_quality_mix() -> None:
    deals = [
        _deal(1, DealStatus.WON),
        _deal(2, DealStatus.LOST),
        _deal(3, DealStatus.APPROVED),
        _deal(4, DealStatus.PENDING_APPROVAL, lead=True),
    ]
    # approval 3/4 * 40 + win 1/2 * 40 + lead 1/4 * 20
    assert deal_quality_factor(deals) == pytest.approx(55.0)


def test_engagement_caps_and_penalties() -> None:
    events = [_event(RatingEventType.COPILOT_SESSION_COMPLETED, i) for i in range(6)]
    events.append(_event(RatingEventType.TRAINING_MODULE_COMPLETED))
    assert engagement_factor(events) == 85

    inactive = [_event(RatingEventType.LOGIN_INACTIVE_30_DAYS, i) for i in range(2)]
    assert engagement_factor(inactive) == 30
    many_inactive = [_event(RatingEventType.LOGIN_INACTIVE_30_DAYS, i) for i in range(10)]
    assert engagement_factor(many_inactive) == 0
    assert engagement_factor([]) == 50


def test_certification_step_function_ignores_inactive() -> None:
    assert certification_factor([], NOW) == 20
    active = [_cert(1, CertificationStatus.ACTIVE, 30)]
    assert certification_factor(active, NOW) == 60
    mixed = active + [
        _cert(2, CertificationStatus.ACTIVE, -1),
        _cert(3, CertificationStatus.REVOKED, 30),
        _cert(4, CertificationStatus.ACTIVE, 10),
    ]
    assert certification_factor(mixed, NOW) == 80
    many = [_cert(i, CertificationStatus.ACTIVE, 30) for i in range(5)]
    assert certification_factor(many, NOW) == 100


def test_compliance_ratio() -> None:
    assert compliance_factor([], []) == 100
    documents = [
        LegalDocument(id="nda", required_for_deals=True),
        LegalDocument(id="msa", required_for_deals=True),
        LegalDocument(id="newsletter", required_for_deals=False),
    ]
    signatures = [
        LegalSignature(id="s1", document_id="nda", user_id="u1"),
        LegalSignature(id="s2", document_id="newsletter", user_id="u1"),
    ]
    assert compliance_factor(documents, signatures) == pytest.approx(50.0)


def test_revenue_factor() -> None:
    assert revenue_factor([]) == 30
    assert revenue_factor([_deal(1, DealStatus.LOST, population=5_000_000)]) == 30
    big = [_deal(i, DealStatus.WON, population=1_000_000) for i in range(5)]
    assert revenue_factor(big) == 100
    mid = [_deal(1, DealStatus.WON, population=100_000), _deal(2, DealStatus.WON, population=200_000)]
    assert revenue_factor(mid) == 40


def test_round_half_up() -> None:
    assert round_half_up(48.5) == 49
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


@pytest.mark.parametrize(
    ("score", "tier"),
    [
        (0, PartnerTier.BRONZE),
        (49, PartnerTier.BRONZE),
        (50, PartnerTier.SILVER),
        (69, PartnerTier.SILVER),
        (70, PartnerTier.GOLD),
        (89, PartnerTier.GOLD),
        (90, PartnerTier.PLATINUM),
        (100, PartnerTier.PLATINUM),
    ],
)
def test_tier_from_score_thresholds(score: int, tier: PartnerTier) -> None:
    assert tier_from_score(score) == tier


def test_score_bounds() -> None:
    top = RatingFactors(deal_quality=100, engagement=100, certification=100, compliance=100, revenue=100)
    bottom = RatingFactors(deal_quality=0, engagement=0, certification=0, compliance=0, revenue=0)
    assert score_from_factors(top) == 100
    assert score_from_factors(bottom) == 0


def _random_factors(rng: random.Random) -> RatingFactors:
    return RatingFactors(**{name: rng.uniform(0, 100) for name in FACTOR_WEIGHTS})


@pytest.mark.parametrize("seed", range(5))
def test_score_is_rounded_weighted_sum(seed: int) -> None:
    rng = random.Random(seed)
    for _ in range(200):
        factors = _random_factors(rng)
        expected = round_half_up(sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items()))
        score = score_from_factors(factors)
        assert score == expected
        assert 0 <= score <= 100


def test_tier_is_monotonic_in_score() -> None:
    ranks = [tier_rank(tier_from_score(score)) for score in range(0, 101)]
    for low in range(0, 101):
        for high in range(low, 101):
            assert ranks[low] <= ranks[high]
