"""Global exception handlers for consistent error responses.

Every error body has the shape
``{"error": {"code", "message", "request_id", "details"?}}``. Domain errors
use the status declared on their class; anything else becomes a generic 500
that never exposes internals.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_ratelimit.core.errors import AppError, RateLimitExceededAppError
from tenant_ratelimit.core.middleware import current_request_id, request_id_header

logger = logging.getLogger(__name__)


def _error_body(
    code: str,
    message: str,
    request_id: str | None,
    details: dict | None = None,
) -> dict:
    error = {"code": code, "message": message, "request_id": request_id}
    if details:
        error["details"] = details
    return {"error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an ``AppError`` with its declared status.

    Rate limit rejections also carry their ``Retry-After`` and
    ``X-RateLimit-*`` headers. Client errors log at warning, server-side
    failures at error.
    """
    status_code = exc.http_status

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    headers = exc.headers if isinstance(exc, RateLimitExceededAppError) else None
    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, current_request_id(request), exc.details),
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; logs the traceback, returns a generic 500.

    This runs outside the request id middleware, so the id is taken from the
    request state and echoed on the response here.
    """
    request_id = current_request_id(request)
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": request_id,
        },
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
            request_id,
        ),
        headers={request_id_header(request): request_id} if request_id else None,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
