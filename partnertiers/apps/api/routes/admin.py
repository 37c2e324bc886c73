from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from partnertiers.apps.api.deps import get_engine, get_rewards_store
from partnertiers.apps.api.openapi import DEFAULT_ERROR_RESPONSES, RENEWAL_ERROR_RESPONSES
from partnertiers.apps.api.response import SuccessEnvelope, success_response
from partnertiers.domain.models import PartnerTier, RenewalResult, TierHistoryEntry
from partnertiers.persistence.repos.partners import require_partner
from partnertiers.services.achievements.config import RewardsConfig, RewardsConfigStore
from partnertiers.services.engine import TierEngine


router = APIRouter(prefix="/admin", tags=["admin"], responses=DEFAULT_ERROR_RESPONSES)


class AwardRequest(BaseModel):
    achievement_id: str = Field(min_length=1)


class AwardResponse(BaseModel):
    partner_id: str
    achievement_id: str
    awarded: bool


class TierChangeRequest(BaseModel):
    tier: PartnerTier
    note: str | None = Field(default=None, max_length=500)


class RewardsConfigUpdateRequest(BaseModel):
    config: RewardsConfig
    updated_by: str | None = None


class RewardsRollbackRequest(BaseModel):
    timestamp: str = Field(min_length=1)
    updated_by: str | None = None


@router.post(
    "/partners/{partner_id}/achievements",
    response_model=SuccessEnvelope[AwardResponse] | AwardResponse,
)
async def award_achievement(
    partner_id: str,
    payload: AwardRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
) -> Any:
    # Admin awards reject unknown ids instead of silently returning false.
    engine.catalog.require(payload.achievement_id)
    await require_partner(engine.redis, partner_id)
    awarded = await engine.tracker.award_achievement(partner_id, payload.achievement_id)
    data = AwardResponse(partner_id=partner_id, achievement_id=payload.achievement_id, awarded=awarded)
    return success_response(request=request, data=data)


@router.delete("/partners/{partner_id}/achievements/{award_field}", status_code=204)
async def remove_achievement(
    partner_id: str,
    award_field: str,
    engine: TierEngine = Depends(get_engine),
) -> None:
    removed = await engine.tracker.remove_achievement(partner_id, award_field)
    if not removed:
        raise HTTPException(
            status_code=404,
            detail={"code": "ACHIEVEMENT_NOT_FOUND", "message": f"award not found: {award_field}"},
        )


@router.delete("/partners/{partner_id}/achievements", status_code=204)
async def clear_achievements(partner_id: str, engine: TierEngine = Depends(get_engine)) -> None:
    await require_partner(engine.redis, partner_id)
    await engine.tracker.clear_all(partner_id)


@router.put(
    "/partners/{partner_id}/tier",
    response_model=SuccessEnvelope[TierHistoryEntry] | TierHistoryEntry,
)
async def change_tier(
    partner_id: str,
    payload: TierChangeRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
) -> Any:
    entry = await engine.admin.change_tier_manually(partner_id, payload.tier, payload.note)
    return success_response(request=request, data=entry)


@router.post(
    "/partners/{partner_id}/renewal",
    response_model=SuccessEnvelope[RenewalResult] | RenewalResult,
    responses=RENEWAL_ERROR_RESPONSES,
)
async def force_renewal(partner_id: str, request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    # Runs the transition regardless of the anniversary; an early run starts the next cycle now.
    result = await engine.renewals.force_renewal(partner_id)
    return success_response(request=request, data=result)


@router.get("/rewards/config", response_model=SuccessEnvelope[RewardsConfig] | RewardsConfig)
async def get_rewards_config(request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    return success_response(request=request, data=engine.rewards_config)


@router.put("/rewards/config", response_model=SuccessEnvelope[RewardsConfig] | RewardsConfig)
async def update_rewards_config(
    payload: RewardsConfigUpdateRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
    store: RewardsConfigStore = Depends(get_rewards_store),
) -> Any:
    saved = await store.save(payload.config, payload.updated_by)
    request.app.state.engine = engine.with_rewards_config(saved)
    await engine.aclose()
    return success_response(request=request, data=saved)


@router.get(
    "/rewards/config/history",
    response_model=SuccessEnvelope[list[RewardsConfig]] | list[RewardsConfig],
)
async def rewards_config_history(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    store: RewardsConfigStore = Depends(get_rewards_store),
) -> Any:
    history = await store.history(limit)
    return success_response(request=request, data=history)


@router.post("/rewards/config/rollback", response_model=SuccessEnvelope[RewardsConfig] | RewardsConfig)
async def rollback_rewards_config(
    payload: RewardsRollbackRequest,
    request: Request,
    engine: TierEngine = Depends(get_engine),
    store: RewardsConfigStore = Depends(get_rewards_store),
) -> Any:
    restored = await store.rollback(payload.timestamp, payload.updated_by)
    request.app.state.engine = engine.with_rewards_config(restored)
    await engine.aclose()
    return success_response(request=request, data=restored)
