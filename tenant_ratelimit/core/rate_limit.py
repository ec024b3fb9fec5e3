"""Rate limiting guard for FastAPI routes.

This module wires the scoped limiter into the HTTP layer.

Strategy:
- Each guarded operation maps to an ordered list of scopes
  (invitation creation → tenant, then admin; acceptance → IP, then user).
- Scopes are checked one by one; the first denial aborts with HTTP 429 and
  later scopes are not touched. Scopes evaluated before the denial keep the
  hit they consumed, even though the request as a whole is rejected.
- A scope whose identifier is missing (no tenant, anonymous user) does not
  apply and is skipped.
- On success, X-RateLimit-* headers describe the last evaluated scope.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Literal, Mapping, NoReturn

from fastapi import Request, Response

from tenant_ratelimit.core.errors import RateLimitExceededAppError
from tenant_ratelimit.core.identity import Principal, get_client_ip, get_principal
from tenant_ratelimit.core.logging import hash_identifier
from tenant_ratelimit.services.policy import RateLimitConfig, RateLimitScope
from tenant_ratelimit.services.rate_limit_service import RateLimitService, normalize_email
from tenant_ratelimit.services.sliding_window import RateLimitResult, epoch_ms

logger = logging.getLogger(__name__)

LimitHeaderSource = Literal["total_hits", "max_requests"]


class RateLimitedOperation(str, Enum):
    """Inbound operations protected by the guard."""

    INVITATION_CREATION = "invitation_creation"
    INVITATION_ACCEPTANCE = "invitation_acceptance"
    TENANT_CREATION = "tenant_creation"
    TENANT_JOINING = "tenant_joining"


# Evaluation order matters: earlier scopes consume before later ones run.
OPERATION_SCOPES: Mapping[RateLimitedOperation, tuple[RateLimitScope, ...]] = {
    RateLimitedOperation.INVITATION_CREATION: (
        RateLimitScope.INVITATION_TENANT,
        RateLimitScope.INVITATION_ADMIN,
    ),
    RateLimitedOperation.INVITATION_ACCEPTANCE: (
        RateLimitScope.INVITATION_IP,
        RateLimitScope.INVITATION_ACCEPTANCE,
    ),
    RateLimitedOperation.TENANT_CREATION: (RateLimitScope.TENANT_CREATION,),
    RateLimitedOperation.TENANT_JOINING: (RateLimitScope.TENANT_JOINING,),
}

_DENIAL_MESSAGES: Mapping[RateLimitScope, str] = {
    RateLimitScope.INVITATION_TENANT: "Tenant invitation limit exceeded",
    RateLimitScope.INVITATION_ADMIN: "Admin invitation limit exceeded",
    RateLimitScope.INVITATION_IP: "Too many invitation attempts from this IP",
    RateLimitScope.INVITATION_EMAIL: "Invitation limit for this email address exceeded",
    RateLimitScope.INVITATION_ACCEPTANCE: "Rate limit exceeded for invitation acceptance",
    RateLimitScope.TENANT_CREATION: "Rate limit exceeded for tenant creation",
    RateLimitScope.TENANT_JOINING: "Rate limit exceeded for tenant joining",
}


@dataclass(frozen=True)
class GuardOutcome:
    """Scope and result that describe an admitted request."""

    scope: RateLimitScope
    config: RateLimitConfig
    result: RateLimitResult


def scope_identifier(
    scope: RateLimitScope,
    principal: Principal,
    client_ip: str | None,
) -> str | None:
    """Derive the identifier a scope is keyed on, or None if it doesn't apply."""

    if scope is RateLimitScope.INVITATION_TENANT:
        return principal.tenant_id
    if scope is RateLimitScope.INVITATION_IP:
        return client_ip
    if scope is RateLimitScope.INVITATION_EMAIL:
        # Comes from the request body; checked explicitly by the route.
        return None
    return principal.user_id


def retry_after_seconds(result: RateLimitResult, now: int) -> int:
    return max(0, math.ceil((result.reset_time - now) / 1000))


def format_reset_time(reset_time_ms: int) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2025-01-01T00:00:00.000Z``."""
    moment = datetime.fromtimestamp(reset_time_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_rate_limit_headers(
    result: RateLimitResult,
    config: RateLimitConfig,
    *,
    limit_source: LimitHeaderSource = "total_hits",
) -> dict[str, str]:
    """Map a result onto X-RateLimit-* response headers.

    ``X-RateLimit-Limit`` historically carries the live hit counter rather
    than the configured ceiling; ``limit_source="max_requests"`` reports the
    ceiling instead.
    """

    limit_value = config.max_requests if limit_source == "max_requests" else result.total_hits
    return {
        "X-RateLimit-Limit": str(limit_value),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": format_reset_time(result.reset_time),
    }


class RateLimitGuard:
    """Evaluate the scopes of an operation and reject over-limit requests.

    Args:
        service: Scoped limiter facade.
        limit_source: Value reported in ``X-RateLimit-Limit``.
        include_headers: Whether responses carry rate limit headers.
        enabled: When False, the route dependency admits everything.
        clock: Epoch-ms clock used for retry-after computation.
    """

    def __init__(
        self,
        service: RateLimitService,
        *,
        limit_source: LimitHeaderSource = "total_hits",
        include_headers: bool = True,
        enabled: bool = True,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.service = service
        self.limit_source = limit_source
        self.include_headers = include_headers
        self.enabled = enabled
        self._clock = clock

    def headers_for(self, outcome: GuardOutcome) -> dict[str, str]:
        return build_rate_limit_headers(
            outcome.result, outcome.config, limit_source=self.limit_source
        )

    async def enforce(self, scope: RateLimitScope, identifier: str) -> GuardOutcome:
        """Consume one attempt from a single scope.

        Raises:
            RateLimitExceededAppError: If the scope denies the attempt.
        """
        result = await self.service.check(scope, identifier)
        return self._settle(scope, identifier, result)

    async def enforce_email(self, email: str) -> GuardOutcome:
        """Consume one attempt from the invitee address budget.

        Raises:
            RateLimitExceededAppError: If the address was invited too often.
        """
        result = await self.service.check_email(email)
        return self._settle(RateLimitScope.INVITATION_EMAIL, normalize_email(email), result)

    def _settle(
        self, scope: RateLimitScope, identifier: str, result: RateLimitResult
    ) -> GuardOutcome:
        outcome = GuardOutcome(
            scope=scope, config=self.service.policy.config_for(scope), result=result
        )
        if not result.allowed:
            self._reject(outcome, identifier)
        return outcome

    async def evaluate(
        self,
        operation: RateLimitedOperation,
        principal: Principal,
        client_ip: str | None,
        *,
        skip_for_admin: bool = False,
    ) -> GuardOutcome | None:
        """Check every applicable scope of ``operation`` in order.

        Returns:
            The last evaluated scope's outcome, or None when no scope applied.

        Raises:
            RateLimitExceededAppError: On the first scope that denies.
        """
        if skip_for_admin and principal.is_admin:
            logger.debug(
                "rate_limit.skipped",
                extra={"operation": operation.value, "reason": "admin_principal"},
            )
            return None

        outcome: GuardOutcome | None = None
        for scope in OPERATION_SCOPES[operation]:
            identifier = scope_identifier(scope, principal, client_ip)
            if not identifier:
                logger.warning(
                    "rate_limit.scope_skipped",
                    extra={
                        "operation": operation.value,
                        "scope": scope.value,
                        "reason": "missing_identifier",
                    },
                )
                continue
            outcome = await self.enforce(scope, identifier)

        if outcome is not None:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "operation": operation.value,
                    "scope": outcome.scope.value,
                    "remaining": outcome.result.remaining,
                    "total_hits": outcome.result.total_hits,
                },
            )
        return outcome

    def _reject(self, outcome: GuardOutcome, identifier: str) -> NoReturn:
        now = self._clock()
        retry_after = retry_after_seconds(outcome.result, now)

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "scope": outcome.scope.value,
                "key_hash": hash_identifier(outcome.config.key_for(identifier)),
                "total_hits": outcome.result.total_hits,
                "limit": outcome.config.max_requests,
                "retry_after_s": retry_after,
            },
        )

        headers: dict[str, str] | None = None
        if self.include_headers:
            headers = {"Retry-After": str(retry_after), **self.headers_for(outcome)}

        raise RateLimitExceededAppError(
            code="rate_limit_exceeded",
            message=f"{_DENIAL_MESSAGES[outcome.scope]}. Try again in {retry_after} seconds.",
            details={
                "scope": outcome.scope.value,
                "retry_after": retry_after,
                "remaining": outcome.result.remaining,
                "reset_time": outcome.result.reset_time,
                "total_hits": outcome.result.total_hits,
            },
            headers=headers,
        )


def get_rate_limit_guard(request: Request) -> RateLimitGuard:
    """Return the guard built for this application instance."""
    return request.app.state.rate_limit_guard


def get_rate_limit_service(request: Request) -> RateLimitService:
    return request.app.state.rate_limit_service


def rate_limit(
    operation: RateLimitedOperation,
    *,
    skip_for_admin: bool = False,
) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the limits of ``operation``.

    Usage:
        @router.post("/tenants", dependencies=[Depends(rate_limit(RateLimitedOperation.TENANT_CREATION))])

    Raises (from the dependency):
        RateLimitExceededAppError: 429 Too Many Requests when any scope denies.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        guard = get_rate_limit_guard(request)
        if not guard.enabled:
            return

        outcome = await guard.evaluate(
            operation,
            get_principal(request),
            get_client_ip(request),
            skip_for_admin=skip_for_admin,
        )
        if outcome is not None and guard.include_headers:
            for name, value in guard.headers_for(outcome).items():
                response.headers[name] = value

    return enforce_rate_limit
