from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from partnertiers.apps.api.deps import get_engine, require_cron_secret
from partnertiers.apps.api.openapi import CRON_ERROR_RESPONSES
from partnertiers.apps.api.response import SuccessEnvelope, success_response
from partnertiers.domain.models import RenewalStats
from partnertiers.services.engine import TierEngine


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], responses=CRON_ERROR_RESPONSES)


class RenewalRunResponse(BaseModel):
    stats: RenewalStats
    completed_at: datetime


async def _run(request: Request, engine: TierEngine) -> Any:
    stats = await engine.renewals.process_all_due_renewals()
    logger.info("cron_tier_renewal_completed processed=%s errors=%s", stats.processed, stats.errors)
    payload = RenewalRunResponse(stats=stats, completed_at=datetime.now(timezone.utc))
    return success_response(request=request, data=payload)


# Schedulers differ in verb; both trigger the same batch.
@router.get(
    "/tier-renewal",
    response_model=SuccessEnvelope[RenewalRunResponse] | RenewalRunResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def tier_renewal_get(request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    return await _run(request, engine)


@router.post(
    "/tier-renewal",
    response_model=SuccessEnvelope[RenewalRunResponse] | RenewalRunResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def tier_renewal_post(request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    return await _run(request, engine)
