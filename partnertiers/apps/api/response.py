from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field


API_VERSION = "v1"
# Portal clients that predate /v1 still call the bare paths and expect bare bodies.
_VERSION_PREFIX = f"/{API_VERSION}/"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorBody
    meta: ResponseMeta


def is_versioned_request(request: Request) -> bool:
    return request.url.path.startswith(_VERSION_PREFIX)


def _meta(request: Request) -> dict[str, Any]:
    # The middleware normally sets the id; handlers reached without it mint one here.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
    return ResponseMeta(request_id=request_id).model_dump()


def success_response(*, request: Request, data: Any) -> Any:
    payload = jsonable_encoder(data)
    if not is_versioned_request(request):
        return payload
    return {"data": payload, "meta": _meta(request)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if not is_versioned_request(request):
        return {"detail": message}
    body = ErrorBody(code=code, message=message, details=details)
    return {"error": body.model_dump(exclude_none=True), "meta": _meta(request)}
