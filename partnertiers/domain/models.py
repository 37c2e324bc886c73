from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PartnerTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# Strict total order used for promotion, demotion and monotonicity checks.
TIER_HIERARCHY: tuple[PartnerTier, ...] = (
    PartnerTier.BRONZE,
    PartnerTier.SILVER,
    PartnerTier.GOLD,
    PartnerTier.PLATINUM,
)


class AchievementCategory(str, Enum):
    CERTIFICATION = "certification"
    DEALS = "deals"
    COMPLIANCE = "compliance"
    TRAINING = "training"
    ENGAGEMENT = "engagement"


class RatingEventType(str, Enum):
    COPILOT_SESSION_COMPLETED = "COPILOT_SESSION_COMPLETED"
    TRAINING_MODULE_COMPLETED = "TRAINING_MODULE_COMPLETED"
    CERTIFICATION_EARNED = "CERTIFICATION_EARNED"
    DEAL_CLOSED_WON = "DEAL_CLOSED_WON"
    MEDDIC_SCORE_IMPROVED = "MEDDIC_SCORE_IMPROVED"
    DEAL_CLOSED_LOST_POOR_QUALIFICATION = "DEAL_CLOSED_LOST_POOR_QUALIFICATION"
    CERTIFICATION_EXPIRED = "CERTIFICATION_EXPIRED"
    LEGAL_EXPIRED = "LEGAL_EXPIRED"
    DEAL_STALE_30_DAYS = "DEAL_STALE_30_DAYS"
    LOGIN_INACTIVE_30_DAYS = "LOGIN_INACTIVE_30_DAYS"


class TierChangeReason(str, Enum):
    MANUAL = "manual"
    ANNUAL_RENEWAL = "annual_renewal"
    ACHIEVEMENT_TRIGGERED = "achievement_triggered"


class DealStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    MORE_INFO_REQUESTED = "more_info_requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    WON = "won"
    LOST = "lost"


class CertificationStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class AnnualMetric(str, Enum):
    # Field names inside the annual progress hash.
    OPPORTUNITIES = "opportunities"
    DEALS_WON = "deals_won"
    CERTIFICATIONS = "certifications"


class AchievementDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: AchievementCategory
    points: int
    repeatable: bool
    tier: PartnerTier
    name: str = ""
    description: str = ""
    icon: str = ""


class EarnedAchievement(BaseModel):
    definition: AchievementDefinition
    completed_at: datetime


class AchievementStatus(BaseModel):
    definition: AchievementDefinition
    completed_at: datetime | None = None
    count: int = 0


class AchievementProgress(BaseModel):
    category: AchievementCategory
    total: int
    completed: int
    percentage: int
    achievements: list[AchievementStatus]


class TierBenefits(BaseModel):
    model_config = ConfigDict(frozen=True)

    discount_percent: int
    features: tuple[str, ...] = ()


class TierAchievementSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()


class AnnualRequirements(BaseModel):
    model_config = ConfigDict(frozen=True)

    certified_employees: int = 0
    opportunities: int = 0
    deals_won: int = 0


class TierRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: PartnerTier
    min_rating: float = Field(ge=0, le=100)
    achievements: TierAchievementSet
    annual_requirements: AnnualRequirements
    benefits: TierBenefits


class RatingEvent(BaseModel):
    id: str
    partner_id: str
    user_id: str
    event_type: RatingEventType
    points: int
    metadata: dict[str, Any] | None = None
    created_at: datetime


class RatingFactors(BaseModel):
    deal_quality: float
    engagement: float
    certification: float
    compliance: float
    revenue: float


class RatingCalculation(BaseModel):
    partner_id: str
    total_score: int
    tier: PartnerTier
    factors: RatingFactors
    calculated_at: datetime


class AnnualMetrics(BaseModel):
    certified_employees: int = 0
    opportunities: int = 0
    deals_won: int = 0


class TierBlockers(BaseModel):
    rating: bool = False
    achievements: list[str] = Field(default_factory=list)
    annual_requirements: bool = False


class TierEligibility(BaseModel):
    current_tier: PartnerTier
    eligible: bool
    next_tier: PartnerTier | None
    blockers: TierBlockers


class MetricProgress(BaseModel):
    current: float
    required: float
    met: bool


class NextTierAchievements(BaseModel):
    completed: list[EarnedAchievement]
    remaining: list[AchievementDefinition]


class NextTierRequirements(BaseModel):
    tier: PartnerTier
    rating: MetricProgress
    achievements: NextTierAchievements
    annual_requirements: dict[str, MetricProgress]


class RenewalRequirement(BaseModel):
    current: int
    required: int


class RenewalStatus(BaseModel):
    next_renewal_date: datetime
    days_until_renewal: int
    currently_meets: bool
    requirements: dict[str, RenewalRequirement]


class TierHistoryEntry(BaseModel):
    partner_id: str
    tier: PartnerTier
    reason: TierChangeReason
    previous_tier: PartnerTier | None = None
    changed_at: datetime
    note: str | None = None


class RenewalResult(BaseModel):
    partner_id: str
    previous_tier: PartnerTier
    new_tier: PartnerTier
    meets_requirements: bool


class RenewalStats(BaseModel):
    processed: int = 0
    upgraded: int = 0
    downgraded: int = 0
    maintained: int = 0
    errors: int = 0


class Partner(BaseModel):
    id: str
    tier: PartnerTier = PartnerTier.BRONZE
    rating: float = 0
    created_at: datetime
    # Start of the current annual cycle; created_at until the first renewal.
    cycle_started_at: datetime | None = None
    name: str = ""
    status: str = "active"


class Deal(BaseModel):
    id: str
    partner_id: str
    status: DealStatus
    population: int = 0
    partner_generated_lead: bool = False
    created_at: datetime | None = None


class Certification(BaseModel):
    id: str
    user_id: str
    partner_id: str = ""
    status: CertificationStatus
    expires_at: datetime
    issued_at: datetime | None = None


class LegalDocument(BaseModel):
    id: str
    required_for_deals: bool = False
    title: str = ""


class LegalSignature(BaseModel):
    id: str
    document_id: str
    user_id: str
    signed_at: datetime | None = None
