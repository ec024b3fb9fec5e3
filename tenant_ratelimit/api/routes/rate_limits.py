"""Operator endpoints to inspect and reset rate limit counters.

Status reads never consume budget. Reset is best effort: a store outage is
logged and the endpoint still answers 204.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from tenant_ratelimit.core.auth import verify_api_key
from tenant_ratelimit.core.rate_limit import get_rate_limit_service
from tenant_ratelimit.schemas.rate_limit import (
    PolicyResponse,
    RateLimitStatus,
    ScopeConfigResponse,
    ScopedStatusResponse,
)
from tenant_ratelimit.services.policy import RateLimitScope
from tenant_ratelimit.services.rate_limit_service import RateLimitService, normalize_email

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate Limits"],
    dependencies=[Depends(verify_api_key)],
)


def _identifier_for(scope: RateLimitScope, identifier: str) -> str:
    if scope is RateLimitScope.INVITATION_EMAIL:
        return normalize_email(identifier)
    return identifier


@router.get("/policy", response_model=PolicyResponse)
async def get_policy(
    service: RateLimitService = Depends(get_rate_limit_service),
) -> PolicyResponse:
    table = service.policy.as_dict()
    return PolicyResponse(
        scopes={name: ScopeConfigResponse(**cfg) for name, cfg in table.items()}
    )


@router.get("/tenants/{tenant_id}", response_model=ScopedStatusResponse)
async def get_tenant_status(
    tenant_id: str,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> ScopedStatusResponse:
    return ScopedStatusResponse.from_results(await service.tenant_status(tenant_id))


@router.get("/users/{user_id}", response_model=ScopedStatusResponse)
async def get_user_status(
    user_id: str,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> ScopedStatusResponse:
    """Status of the per-user scopes, including the admin invitation budget."""
    return ScopedStatusResponse.from_results(await service.user_status(user_id))


@router.get("/admins/{user_id}", response_model=ScopedStatusResponse)
async def get_admin_status(
    user_id: str,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> ScopedStatusResponse:
    return ScopedStatusResponse.from_results(await service.admin_status(user_id))


@router.get("/{scope}/{identifier}", response_model=RateLimitStatus)
async def get_scope_status(
    scope: RateLimitScope,
    identifier: str,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> RateLimitStatus:
    result = await service.status(scope, _identifier_for(scope, identifier))
    return RateLimitStatus.from_result(result)


@router.delete("/{scope}/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_scope(
    scope: RateLimitScope,
    identifier: str,
    service: RateLimitService = Depends(get_rate_limit_service),
) -> Response:
    await service.reset(scope, _identifier_for(scope, identifier))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
