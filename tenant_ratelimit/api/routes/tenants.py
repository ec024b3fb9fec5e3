from __future__ import annotations

from fastapi import APIRouter, Depends, status

from tenant_ratelimit.core.rate_limit import RateLimitedOperation, rate_limit
from tenant_ratelimit.schemas.rate_limit import CreateTenantRequest, OperationAccepted

router = APIRouter(tags=["Tenants"])


@router.post(
    "/tenants",
    response_model=OperationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[
        Depends(rate_limit(RateLimitedOperation.TENANT_CREATION, skip_for_admin=True))
    ],
)
async def create_tenant(payload: CreateTenantRequest) -> OperationAccepted:
    """Admit a tenant creation request. Admins are not rate limited here."""
    return OperationAccepted(operation=RateLimitedOperation.TENANT_CREATION.value)


@router.post(
    "/tenants/{tenant_id}/join",
    response_model=OperationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(rate_limit(RateLimitedOperation.TENANT_JOINING))],
)
async def join_tenant(tenant_id: str) -> OperationAccepted:
    return OperationAccepted(
        operation=RateLimitedOperation.TENANT_JOINING.value,
        tenant_id=tenant_id,
    )
