from __future__ import annotations

from typing import Any

from partnertiers.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response("Rejected by tier rules", "TIER_CHANGE_REJECTED", "partner p_123 is already gold"),
    404: _response("Partner not found", "PARTNER_NOT_FOUND", "partner not found: p_123"),
    422: _response("Validation error", "REQUEST_VALIDATION_ERROR", "Validation error"),
    500: _response("Internal server error", "INTERNAL_ERROR", "Internal server error"),
    503: _response("Store unavailable", "STORE_UNAVAILABLE", "store unavailable during get_partner"),
}

CRON_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    **DEFAULT_ERROR_RESPONSES,
    401: _response("Unauthorized", "AUTH_UNAUTHORIZED", "Missing or invalid cron secret"),
}

RENEWAL_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    409: _response("Renewal in progress", "RENEWAL_IN_PROGRESS", "renewal already in progress: p_123"),
}
