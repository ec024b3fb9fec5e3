from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from tenant_ratelimit.core.identity import get_principal
from tenant_ratelimit.core.rate_limit import (
    RateLimitedOperation,
    get_rate_limit_guard,
    rate_limit,
)
from tenant_ratelimit.schemas.rate_limit import CreateInvitationRequest, OperationAccepted

router = APIRouter(tags=["Invitations"])


@router.post(
    "/invitations",
    response_model=OperationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(rate_limit(RateLimitedOperation.INVITATION_CREATION))],
)
async def create_invitation(
    payload: CreateInvitationRequest,
    request: Request,
    response: Response,
) -> OperationAccepted:
    """Admit an invitation for creation.

    Tenant and admin budgets are consumed by the route dependency. The
    invitee address has its own budget, checked once the body is parsed, so
    a single address can't be flooded from several tenants.

    Raises:
        RateLimitExceededAppError: 429 when any invitation budget is exhausted.
    """
    guard = get_rate_limit_guard(request)
    if guard.enabled:
        outcome = await guard.enforce_email(payload.email)
        if guard.include_headers:
            for name, value in guard.headers_for(outcome).items():
                response.headers[name] = value

    return OperationAccepted(
        operation=RateLimitedOperation.INVITATION_CREATION.value,
        tenant_id=get_principal(request).tenant_id,
    )


_acceptance_limit = [Depends(rate_limit(RateLimitedOperation.INVITATION_ACCEPTANCE))]


@router.get(
    "/invitation-acceptance/{token}",
    response_model=OperationAccepted,
    dependencies=_acceptance_limit,
)
async def open_invitation_link(token: str) -> OperationAccepted:
    """Admit a visit to an invitation link (per IP, then per user)."""
    return OperationAccepted(operation=RateLimitedOperation.INVITATION_ACCEPTANCE.value)


@router.post(
    "/invitation-acceptance/{token}",
    response_model=OperationAccepted,
    dependencies=_acceptance_limit,
)
async def accept_invitation(token: str) -> OperationAccepted:
    """Admit an invitation acceptance attempt.

    Link visits and acceptances share the per-IP and per-user budgets.
    """
    return OperationAccepted(operation=RateLimitedOperation.INVITATION_ACCEPTANCE.value)
