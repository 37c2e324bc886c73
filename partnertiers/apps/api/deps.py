from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, Request

from partnertiers.core.config import Settings
from partnertiers.services.achievements.config import RewardsConfigStore
from partnertiers.services.engine import TierEngine


def get_engine(request: Request) -> TierEngine:
    # The engine is built once per process by the app lifespan (or injected by tests).
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail={"code": "ENGINE_NOT_READY", "message": "Engine not initialized"})
    return engine


def get_settings_dep(engine: TierEngine = Depends(get_engine)) -> Settings:
    return engine.settings


def get_rewards_store(engine: TierEngine = Depends(get_engine)) -> RewardsConfigStore:
    return RewardsConfigStore(engine.redis, settings=engine.settings, clock=engine.clock)


def require_cron_secret(request: Request, settings: Settings = Depends(get_settings_dep)) -> None:
    # Scheduler calls carry "Authorization: Bearer <cron_secret>"; no secret configured means no access.
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    expected = settings.cron_secret
    valid = bool(expected) and scheme.lower() == "bearer"
    if not valid or not hmac.compare_digest(token.strip().encode(), (expected or "").encode()):
        raise HTTPException(
            status_code=401,
            detail={"code": "AUTH_UNAUTHORIZED", "message": "Missing or invalid cron secret"},
            headers={"WWW-Authenticate": "Bearer"},
        )
