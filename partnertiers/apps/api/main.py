from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from partnertiers.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from partnertiers.apps.api.response import API_VERSION
from partnertiers.apps.api.routes.admin import router as admin_router
from partnertiers.apps.api.routes.cron import router as cron_router
from partnertiers.apps.api.routes.health import router as health_router
from partnertiers.apps.api.routes.partners import router as partners_router
from partnertiers.core.config import Settings, get_settings
from partnertiers.core.errors import PartnerTiersError
from partnertiers.core.logging import configure_logging
from partnertiers.persistence.redis import create_redis
from partnertiers.services.achievements.config import RewardsConfigStore
from partnertiers.services.engine import TierEngine


logger = logging.getLogger(__name__)

_ROUTERS = (health_router, partners_router, admin_router, cron_router)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Injected engines belong to the caller; only engines built here are torn down here.
    if getattr(app.state, "engine", None) is not None:
        yield
        return
    settings: Settings = app.state.settings
    redis = create_redis(settings)
    rewards_config = await RewardsConfigStore(redis, settings=settings).load()
    app.state.engine = TierEngine.create(redis, settings, rewards_config)
    logger.info("engine_started achievements=%s", len(app.state.engine.catalog))
    try:
        yield
    finally:
        await app.state.engine.aclose()
        await redis.aclose()
        logger.info("engine_stopped")


def create_app(engine: TierEngine | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or (engine.settings if engine is not None else get_settings())
    configure_logging(settings.log_level)
    app = FastAPI(title="Partner Tiers API", version=API_VERSION, lifespan=_lifespan)
    app.state.settings = settings
    app.state.engine = engine

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(PartnerTiersError)
    async def _domain_exception_handler(request: Request, exc: PartnerTiersError):
        return await domain_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    # Unversioned aliases keep the portal's original paths working.
    for router in _ROUTERS:
        app.include_router(router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="Partner Tiers API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    return app


app = create_app()
