"""Request correlation middleware.

Every response carries the request id (echoed from the client when it sent a
usable one) and its handling time. One ``http.request_completed`` event is
logged per request, flagged when the request was rate limited, so 429 spikes
can be traced back to individual calls.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import Request, Response

from tenant_ratelimit.core.config import settings
from tenant_ratelimit.core.logging import clear_request_id, get_request_id, set_request_id

logger = logging.getLogger(__name__)

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _incoming_request_id(request: Request, header_name: str) -> str:
    candidate = request.headers.get(header_name, "")
    if _REQUEST_ID_PATTERN.match(candidate):
        return candidate
    return str(uuid.uuid4())


def request_id_header(request: Request) -> str:
    """Header carrying the request id, as configured for the serving app."""
    app_settings = getattr(request.app.state, "settings", None) or settings
    return app_settings.log.request_id_header


def current_request_id(request: Request) -> str | None:
    """Request id bound by the middleware.

    Read from ``request.state`` first: the outermost error handler runs after
    the middleware has already cleared the logging context.
    """
    return getattr(request.state, "request_id", None) or get_request_id()


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id to the context for the duration of the request.

    Incoming ids that are empty, too long or contain characters outside
    ``[A-Za-z0-9._:-]`` are replaced with a fresh UUID to keep log lines
    intact.
    """

    header_name = request_id_header(request)
    request_id = _incoming_request_id(request, header_name)
    request.state.request_id = request_id
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request_completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "rate_limited": response.status_code == 429,
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
