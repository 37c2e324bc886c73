from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from partnertiers.apps.api.deps import get_engine
from partnertiers.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from partnertiers.apps.api.response import SuccessEnvelope, success_response
from partnertiers.core.errors import StoreUnavailableError
from partnertiers.persistence.redis import store_call
from partnertiers.services.engine import TierEngine

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    store: str


@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request, engine: TierEngine = Depends(get_engine)) -> Any:
    # A store outage reports "degraded" instead of failing the probe.
    try:
        with store_call("health_ping"):
            await engine.redis.ping()
        store = "ok"
    except StoreUnavailableError:
        store = "unavailable"
    status = "ok" if store == "ok" else "degraded"
    return success_response(request=request, data=HealthResponse(status=status, store=store))
