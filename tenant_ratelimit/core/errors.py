"""Application-level exception types.

Each error carries a stable machine-readable code and the HTTP status it is
rendered with, so handlers never need to know the concrete subclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context returned to clients under ``error.details``."""

    hint: str
    scope: str
    retry_after: int
    remaining: int
    reset_time: int
    total_hits: int
    backend: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    http_status: ClassVar[int] = 400

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Invalid input or configuration."""


class AuthenticationAppError(AppError):
    """Missing or invalid operator credentials."""

    http_status: ClassVar[int] = 403


class StoreUnavailableError(AppError):
    """Raised by store adapters on connection, timeout or protocol failures.

    The limiter recovers from this locally (fail-open); it only reaches the
    HTTP layer from paths that talk to the store directly.
    """

    http_status: ClassVar[int] = 503


@dataclass
class RateLimitExceededAppError(AppError):
    """A scope denied the request.

    Attributes:
        headers: ``Retry-After`` and ``X-RateLimit-*`` headers for the 429 response.
    """

    http_status: ClassVar[int] = 429

    headers: dict[str, str] | None = None
