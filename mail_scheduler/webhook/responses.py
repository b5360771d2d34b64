"""Response envelope and shared-secret check for the scheduler endpoints."""

import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from mail_scheduler.models.dispatch import DispatchResult, SchedulerError, SchedulerResponse
from mail_scheduler.scheduler.errors import UNAUTHORIZED

API_KEY_HEADER = "x-api-key"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {API_KEY_HEADER}",
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def create_response(
    message: Optional[str] = None,
    status_code: int = 200,
    data: Optional[DispatchResult] = None,
    error: Optional[SchedulerError] = None,
) -> JSONResponse:
    """Build the ``{success, message, timestamp, data?, error?}`` envelope."""
    body = SchedulerResponse(
        success=status_code < 400,
        message=message or ("Success" if status_code < 400 else "Error"),
        timestamp=utc_timestamp(),
        data=data,
        error=error,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=CORS_HEADERS,
    )


def json_response(content: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


def is_authorized(request: Request) -> bool:
    """Constant-time comparison of the x-api-key header. No configured key rejects everyone."""
    expected = getattr(request.app.state, "api_key", "") or ""
    received = request.headers.get(API_KEY_HEADER) or ""
    if not expected or not received:
        return False
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def unauthorized_response() -> JSONResponse:
    return create_response(
        "Invalid API key",
        status_code=401,
        error=SchedulerError(code="UNAUTHORIZED", message=UNAUTHORIZED),
    )
