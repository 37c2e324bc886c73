from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from partnertiers.apps.api.deps import get_engine
from partnertiers.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from partnertiers.apps.api.response import SuccessEnvelope, success_response
from partnertiers.domain.models import (
    AchievementCategory,
    AchievementDefinition,
    AchievementProgress,
    EarnedAchievement,
    NextTierRequirements,
    RatingCalculation,
    RatingEvent,
    RatingEventType,
    RenewalStatus,
    TierEligibility,
    TierHistoryEntry,
    TierRequirement,
)
from partnertiers.persistence.repos.partners import require_partner
from partnertiers.services.engine import TierEngine


router = APIRouter(tags=["partners"], responses=DEFAULT_ERROR_RESPONSES)


class DefinitionsResponse(BaseModel):
    achievements: list[AchievementDefinition]
    tiers: list[TierRequirement]


class RecalculateRequest(BaseModel):
    user_id: str = Field(min_length=1)


class RatingEventRequest(BaseModel):
    user_id: str = Field(min_length=1)
    event_type: RatingEventType
    metadata: dict[str, Any] | None = None


class OpportunityResponse(BaseModel):
    partner_id: str
    awarded: list[str]


@router.get(
    "/achievements/definitions",
    response_model=SuccessEnvelope[DefinitionsResponse] | DefinitionsResponse,
)
async def list_definitions(request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    payload = DefinitionsResponse(achievements=engine.catalog.all(), tiers=engine.rules.all())
    return success_response(request=request, data=payload)


@router.get(
    "/partners/{partner_id}/achievements",
    response_model=SuccessEnvelope[list[EarnedAchievement]] | list[EarnedAchievement],
)
async def list_partner_achievements(
    partner_id: str,
    request: Request,
    engine: TierEngine = Depends(get_engine),
) -> Any:
    await require_partner(engine.redis, partner_id)
    earned = await engine.tracker.list_earned_achievements(partner_id)
    return success_response(request=request, data=earned)


@router.get(
    "/partners/{partner_id}/achievements/progress",
    response_model=SuccessEnvelope[list[AchievementProgress]] | list[AchievementProgress],
)
async def achievement_progress(
    partner_id: str,
    request: Request,
    category: AchievementCategory | None = Query(default=None),
    engine: TierEngine = Depends(get_engine),
) -> Any:
    await require_partner(engine.redis, partner_id)
    if category is None:
        progress = await engine.tracker.progress_all_categories(partner_id)
    else:
        progress = [await engine.tracker.progress_by_category(partner_id, category)]
    return success_response(request=request, data=progress)


@router.get(
    "/partners/{partner_id}/tier/eligibility",
    response_model=SuccessEnvelope[TierEligibility] | TierEligibility,
)
async def tier_eligibility(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    eligibility = await engine.eligibility.calculate_tier_eligibility(partner_id)
    return success_response(request=request, data=eligibility)


# Null data at the top tier.
@router.get(
    "/partners/{partner_id}/tier/next",
    response_model=SuccessEnvelope[NextTierRequirements | None] | NextTierRequirements | None,
)
async def next_tier_requirements(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    requirements = await engine.eligibility.get_next_tier_requirements(partner_id)
    return success_response(request=request, data=requirements)


@router.get(
    "/partners/{partner_id}/tier/renewal",
    response_model=SuccessEnvelope[RenewalStatus] | RenewalStatus,
)
async def renewal_status(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    status = await engine.eligibility.check_annual_renewal(partner_id)
    return success_response(request=request, data=status)


@router.get(
    "/partners/{partner_id}/tier/history",
    response_model=SuccessEnvelope[list[TierHistoryEntry]] | list[TierHistoryEntry],
)
async def tier_history(
    partner_id: str,
    request: Request,
    limit: int | None = Query(default=None, ge=1, le=500),
    engine: TierEngine = Depends(get_engine),
) -> Any:
    history = await engine.admin.tier_history(partner_id, limit)
    return success_response(request=request, data=history)


@router.get(
    "/partners/{partner_id}/rating",
    response_model=SuccessEnvelope[RatingCalculation | None] | RatingCalculation | None,
)
async def cached_rating(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    await require_partner(engine.redis, partner_id)
    calculation = await engine.calculator.get_cached_rating(partner_id)
    return success_response(request=request, data=calculation)


@router.post(
    "/partners/{partner_id}/rating/recalculate",
    response_model=SuccessEnvelope[RatingCalculation] | RatingCalculation,
)
async def recalculate_rating(
    partner_id: str,
    payload: RecalculateRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
) -> Any:
    calculation = await engine.calculator.recalculate_and_persist(partner_id, payload.user_id)
    return success_response(request=request, data=calculation)


@router.get(
    "/partners/{partner_id}/events",
    response_model=SuccessEnvelope[list[RatingEvent]] | list[RatingEvent],
)
async def list_rating_events(
    partner_id: str,
    request: Request,
    limit: int | None = Query(default=None, ge=1, le=1000),
    engine: TierEngine = Depends(get_engine),
) -> Any:
    await require_partner(engine.redis, partner_id)
    events = await engine.events.list_events(partner_id, limit)
    return success_response(request=request, data=events)


@router.post(
    "/partners/{partner_id}/events",
    status_code=201,
    response_model=SuccessEnvelope[RatingEvent] | RatingEvent,
)
async def log_rating_event(
    partner_id: str,
    payload: RatingEventRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
) -> Any:
    await require_partner(engine.redis, partner_id)
    event = await engine.events.log_event(partner_id, payload.user_id, payload.event_type, payload.metadata)
    return success_response(request=request, data=event)


@router.post(
    "/partners/{partner_id}/opportunities",
    status_code=201,
    response_model=SuccessEnvelope[OpportunityResponse] | OpportunityResponse,
)
async def register_opportunity(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    await require_partner(engine.redis, partner_id)
    awarded = await engine.triggers.record_opportunity_registered(partner_id)
    return success_response(request=request, data=OpportunityResponse(partner_id=partner_id, awarded=awarded))
