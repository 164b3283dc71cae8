"""
HTTP mapping for coaching errors.

Each ErrorKind has exactly one status code and machine-readable code. Errors
are logged with the user, request and a redacted copy of the JSON body.
"""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coachline.exceptions import CoachingError, ErrorKind
from coachline.utils.dates import utc_now

logger = logging.getLogger(__name__)

ERROR_RESPONSES: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.RATE_LIMIT_EXCEEDED: (429, "RATE_LIMIT_EXCEEDED"),
    ErrorKind.ACTIVE_SESSION_EXISTS: (409, "ACTIVE_SESSION_EXISTS"),
    ErrorKind.AGENT_NOT_CONFIGURED: (503, "AGENT_NOT_CONFIGURED"),
    ErrorKind.CONVERSATION_NOT_FOUND: (404, "CONVERSATION_NOT_FOUND"),
    ErrorKind.PERSONALITY_NOT_FOUND: (404, "PERSONALITY_NOT_FOUND"),
    ErrorKind.VOICE_PLATFORM_ERROR: (502, "VOICE_PLATFORM_ERROR"),
}

REDACTED = "[REDACTED]"
SENSITIVE_MARKERS = ("password", "token", "apikey", "api_key", "secret", "authorization")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_MARKERS)


def sanitize(value: Any) -> Any:
    """Copy of a JSON value with credential-like fields redacted at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive(str(key)) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


async def capture_request_body(request: Request) -> None:
    """
    Router dependency keeping the parsed JSON body for error logging.

    FastAPI has already read the body by the time dependencies run, so this
    only reuses the cached bytes.
    """
    if request.method not in ("POST", "PUT", "PATCH"):
        return
    try:
        request.state.json_body = await request.json()
    except ValueError:
        request.state.json_body = None


async def coaching_error_handler(request: Request, exc: CoachingError) -> JSONResponse:
    status_code, error_code = ERROR_RESPONSES[exc.kind]
    body: dict[str, Any] = {
        "statusCode": status_code,
        "message": exc.message,
        "error": HTTPStatus(status_code).phrase,
        "errorCode": error_code,
        "timestamp": utc_now().isoformat(),
        "path": request.url.path,
    }
    headers = {}
    if exc.kind == ErrorKind.RATE_LIMIT_EXCEEDED and exc.reset_at is not None:
        body["retryAfter"] = exc.reset_at.isoformat()
        seconds = max(int((exc.reset_at - utc_now()).total_seconds()), 0)
        headers["Retry-After"] = str(seconds)

    user_id = request.headers.get("X-User-Id", "anonymous")
    log_context = (
        f"user={user_id} {request.method} {request.url.path} "
        f"query={dict(request.query_params)} "
        f"body={sanitize(getattr(request.state, 'json_body', None))} "
        f"code={error_code}"
    )
    if status_code >= 500:
        logger.error(
            f"Coaching error {status_code}: {exc.message} ({log_context})",
            exc_info=exc.cause,
        )
    else:
        logger.warning(f"Coaching error {status_code}: {exc.message} ({log_context})")

    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoachingError, coaching_error_handler)
