"""Tests for multi-scope guard composition and identity extraction."""

import logging

import pytest
from starlette.requests import Request

from tenant_ratelimit.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from tenant_ratelimit.core.config import HOUR_MS
from tenant_ratelimit.core.errors import RateLimitExceededAppError
from tenant_ratelimit.core.identity import Principal, get_client_ip, get_principal
from tenant_ratelimit.core.rate_limit import (
    OPERATION_SCOPES,
    RateLimitedOperation,
    RateLimitGuard,
    build_rate_limit_headers,
    format_reset_time,
    retry_after_seconds,
    scope_identifier,
)
from tenant_ratelimit.services.policy import (
    DEFAULT_POLICY,
    RateLimitConfig,
    RateLimitPolicy,
    RateLimitScope,
)
from tenant_ratelimit.services.rate_limit_service import RateLimitService
from tenant_ratelimit.services.sliding_window import RateLimitResult, SlidingWindowLimiter

T0 = 1_700_000_000_000


def _service(overrides: dict | None = None) -> RateLimitService:
    configs = {}
    for scope, max_requests in (overrides or {}).items():
        default = DEFAULT_POLICY[scope]
        configs[scope] = RateLimitConfig(default.window_ms, max_requests, default.key_prefix)
    limiter = SlidingWindowLimiter(InMemoryRateLimitStore(), clock=lambda: T0)
    return RateLimitService(limiter, RateLimitPolicy(configs))


def _guard(service: RateLimitService, **kwargs) -> RateLimitGuard:
    return RateLimitGuard(service, clock=lambda: T0, **kwargs)


def _request(headers: dict[str, str] | None = None, client=("203.0.113.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_operation_scope_order() -> None:
    assert OPERATION_SCOPES[RateLimitedOperation.INVITATION_CREATION] == (
        RateLimitScope.INVITATION_TENANT,
        RateLimitScope.INVITATION_ADMIN,
    )
    assert OPERATION_SCOPES[RateLimitedOperation.INVITATION_ACCEPTANCE] == (
        RateLimitScope.INVITATION_IP,
        RateLimitScope.INVITATION_ACCEPTANCE,
    )


@pytest.mark.asyncio
async def test_creation_checks_tenant_then_admin() -> None:
    service = _service()
    guard = _guard(service)

    outcome = await guard.evaluate(
        RateLimitedOperation.INVITATION_CREATION,
        Principal(user_id="u1", tenant_id="t1"),
        "10.0.0.1",
    )

    assert outcome is not None
    assert outcome.scope is RateLimitScope.INVITATION_ADMIN
    assert (await service.status(RateLimitScope.INVITATION_TENANT, "t1")).total_hits == 1
    assert (await service.status(RateLimitScope.INVITATION_ADMIN, "u1")).total_hits == 1


@pytest.mark.asyncio
async def test_missing_tenant_skips_tenant_scope(caplog: pytest.LogCaptureFixture) -> None:
    service = _service()
    guard = _guard(service)

    with caplog.at_level(logging.WARNING):
        outcome = await guard.evaluate(
            RateLimitedOperation.INVITATION_CREATION,
            Principal(user_id="u1", tenant_id=None),
            "10.0.0.1",
        )

    assert outcome.scope is RateLimitScope.INVITATION_ADMIN
    assert outcome.result.total_hits == 1
    skipped = [r for r in caplog.records if r.getMessage() == "rate_limit.scope_skipped"]
    assert [r.scope for r in skipped] == ["invitation_tenant"]


@pytest.mark.asyncio
async def test_anonymous_caller_without_scopes_is_admitted() -> None:
    guard = _guard(_service())

    outcome = await guard.evaluate(
        RateLimitedOperation.TENANT_CREATION, Principal(), "10.0.0.1"
    )

    assert outcome is None


@pytest.mark.asyncio
async def test_admin_denial_keeps_tenant_hit_and_reports_admin_window() -> None:
    service = _service({RateLimitScope.INVITATION_ADMIN: 1})
    guard = _guard(service)
    principal = Principal(user_id="u1", tenant_id="t1")

    await guard.evaluate(RateLimitedOperation.INVITATION_CREATION, principal, None)
    with pytest.raises(RateLimitExceededAppError) as exc_info:
        await guard.evaluate(RateLimitedOperation.INVITATION_CREATION, principal, None)

    error = exc_info.value
    assert error.code == "rate_limit_exceeded"
    assert error.details["scope"] == "invitation_admin"
    assert error.details["reset_time"] == T0 + HOUR_MS
    assert error.details["retry_after"] == 3600
    assert error.message == "Admin invitation limit exceeded. Try again in 3600 seconds."
    tenant = await service.status(RateLimitScope.INVITATION_TENANT, "t1")
    assert tenant.total_hits == 2


@pytest.mark.asyncio
async def test_first_denial_stops_later_scopes() -> None:
    service = _service({RateLimitScope.INVITATION_IP: 1})
    guard = _guard(service)
    principal = Principal(user_id="u1")

    await guard.evaluate(RateLimitedOperation.INVITATION_ACCEPTANCE, principal, "198.51.100.7")
    with pytest.raises(RateLimitExceededAppError) as exc_info:
        await guard.evaluate(
            RateLimitedOperation.INVITATION_ACCEPTANCE, principal, "198.51.100.7"
        )

    assert exc_info.value.details["scope"] == "invitation_ip"
    acceptance = await service.status(RateLimitScope.INVITATION_ACCEPTANCE, "u1")
    assert acceptance.total_hits == 1


@pytest.mark.asyncio
async def test_rejection_carries_retry_after_and_window_headers() -> None:
    service = _service({RateLimitScope.TENANT_JOINING: 2})
    principal = Principal(user_id="u1")
    guard = _guard(service)

    await guard.evaluate(RateLimitedOperation.TENANT_JOINING, principal, None)
    await guard.evaluate(RateLimitedOperation.TENANT_JOINING, principal, None)
    with pytest.raises(RateLimitExceededAppError) as exc_info:
        await guard.evaluate(RateLimitedOperation.TENANT_JOINING, principal, None)

    assert exc_info.value.headers == {
        "Retry-After": "3600",
        "X-RateLimit-Limit": "2",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": format_reset_time(T0 + HOUR_MS),
    }


@pytest.mark.asyncio
async def test_rejection_without_headers() -> None:
    service = _service({RateLimitScope.TENANT_CREATION: 1})
    guard = _guard(service, include_headers=False)
    principal = Principal(user_id="u1")

    await guard.evaluate(RateLimitedOperation.TENANT_CREATION, principal, None)
    with pytest.raises(RateLimitExceededAppError) as exc_info:
        await guard.evaluate(RateLimitedOperation.TENANT_CREATION, principal, None)

    assert exc_info.value.headers is None


@pytest.mark.asyncio
async def test_admin_bypass_consumes_nothing() -> None:
    service = _service({RateLimitScope.TENANT_CREATION: 1})
    guard = _guard(service)
    admin = Principal(user_id="root", roles=("tenant-admin",))

    for _ in range(3):
        outcome = await guard.evaluate(
            RateLimitedOperation.TENANT_CREATION, admin, None, skip_for_admin=True
        )
        assert outcome is None

    assert (await service.status(RateLimitScope.TENANT_CREATION, "root")).total_hits == 0


def test_limit_header_reports_hits_by_default() -> None:
    result = RateLimitResult(allowed=True, remaining=4, reset_time=T0, total_hits=6)
    config = RateLimitConfig(60_000, 10, "p")

    quirk = build_rate_limit_headers(result, config)
    ceiling = build_rate_limit_headers(result, config, limit_source="max_requests")

    assert quirk == {
        "X-RateLimit-Limit": "6",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": format_reset_time(T0),
    }
    assert ceiling["X-RateLimit-Limit"] == "10"


def test_format_reset_time_is_utc_with_milliseconds() -> None:
    assert format_reset_time(1_735_689_600_123) == "2025-01-01T00:00:00.123Z"


@pytest.mark.parametrize(
    "reset_time, expected",
    [(T0 + 1, 1), (T0 + 1000, 1), (T0 + 1001, 2), (T0, 0), (T0 - 5000, 0)],
)
def test_retry_after_rounds_up(reset_time: int, expected: int) -> None:
    result = RateLimitResult(allowed=False, remaining=0, reset_time=reset_time, total_hits=1)

    assert retry_after_seconds(result, T0) == expected


def test_scope_identifier_mapping() -> None:
    principal = Principal(user_id="u1", tenant_id="t1")

    assert scope_identifier(RateLimitScope.INVITATION_TENANT, principal, "ip") == "t1"
    assert scope_identifier(RateLimitScope.INVITATION_ADMIN, principal, "ip") == "u1"
    assert scope_identifier(RateLimitScope.INVITATION_IP, principal, "ip") == "ip"
    assert scope_identifier(RateLimitScope.INVITATION_EMAIL, principal, "ip") is None


def test_principal_from_headers() -> None:
    request = _request(
        {"X-User-ID": "u1", "X-Tenant-ID": "t1", "X-User-Roles": "member, Tenant-Admin"}
    )

    principal = get_principal(request)

    assert principal == Principal(user_id="u1", tenant_id="t1", roles=("member", "Tenant-Admin"))
    assert principal.is_admin is True


def test_principal_from_request_state_wins() -> None:
    request = _request({"X-User-ID": "spoofed"})
    request.state.principal = Principal(user_id="real")

    assert get_principal(request).user_id == "real"


def test_empty_identity_headers_are_missing() -> None:
    principal = get_principal(_request({"X-Tenant-ID": ""}))

    assert principal.tenant_id is None
    assert principal.user_id is None
    assert principal.is_admin is False


@pytest.mark.parametrize(
    "headers, client, expected",
    [
        ({"X-Forwarded-For": "198.51.100.1, 10.0.0.2"}, ("10.0.0.9", 1), "198.51.100.1"),
        ({"X-Real-IP": " 198.51.100.2 "}, ("10.0.0.9", 1), "198.51.100.2"),
        ({}, ("10.0.0.9", 1), "10.0.0.9"),
        ({}, None, "unknown"),
    ],
)
def test_client_ip_resolution(headers: dict, client, expected: str) -> None:
    assert get_client_ip(_request(headers, client=client)) == expected
