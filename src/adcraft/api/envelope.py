"""
adcraft.api.envelope - Response Envelope
==========================================

All API responses share one JSON shape:

    success: {"success": true,  "data": {...},  "timestamp": ..., "requestId": ...}
    failure: {"success": false, "error": {"code", "message", "userMessage"[, "details"]},
              "timestamp": ..., "requestId": ...}

Status Codes:
    400  VALIDATION_ERROR, SESSION_INVALID_STATE, HANDOFF_VALIDATION_FAILED
    402  BUDGET_EXCEEDED
    404  SESSION_NOT_FOUND
    409  GENERATION_CANCELLED
    429  RATE_LIMITED
    500  everything else
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from adcraft.api.messages import error_messages
from adcraft.core.enums import Locale

STATUS_BY_CODE: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "SESSION_INVALID_STATE": 400,
    "HANDOFF_VALIDATION_FAILED": 400,
    "BUDGET_EXCEEDED": 402,
    "SESSION_NOT_FOUND": 404,
    "GENERATION_CANCELLED": 409,
    "RATE_LIMITED": 429,
}


def status_for(code: str) -> int:
    return STATUS_BY_CODE.get(code, 500)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(data: Any, request_id: str, status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` (models, dicts, lists) in a success envelope."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": jsonable_encoder(data),
            "timestamp": _timestamp(),
            "requestId": request_id,
        },
    )


def error_response(
    code: str,
    request_id: str,
    locale: Locale = Locale.EN,
    details: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    """Build a failure envelope for ``code``.

    ``details`` is only attached to client errors (4xx); server errors never
    expose internal context.
    """
    status_code = status_for(code)
    message, user_message = error_messages(code, locale)
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "userMessage": user_message,
    }
    if details and status_code < 500:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "timestamp": _timestamp(),
            "requestId": request_id,
        },
    )
