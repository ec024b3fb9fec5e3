"""Scope-aware facade over the sliding window limiter.

Binds a limiter to a policy so callers address limits by scope and raw
identifier instead of assembling configs and keys themselves.
"""

from __future__ import annotations

from tenant_ratelimit.services.policy import RateLimitPolicy, RateLimitScope
from tenant_ratelimit.services.sliding_window import RateLimitResult, SlidingWindowLimiter

USER_SCOPES: tuple[RateLimitScope, ...] = (
    RateLimitScope.TENANT_CREATION,
    RateLimitScope.TENANT_JOINING,
    RateLimitScope.INVITATION_ACCEPTANCE,
    RateLimitScope.INVITATION_ADMIN,
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class RateLimitService:
    """Check, inspect and reset limits per scope.

    Args:
        limiter: Shared sliding window limiter.
        policy: Scope configuration table.
    """

    def __init__(self, limiter: SlidingWindowLimiter, policy: RateLimitPolicy) -> None:
        self.limiter = limiter
        self.policy = policy

    async def check(self, scope: RateLimitScope, identifier: str) -> RateLimitResult:
        """Consume one attempt from ``scope`` for ``identifier``."""
        return await self.limiter.check_and_consume(identifier, self.policy.config_for(scope))

    async def status(self, scope: RateLimitScope, identifier: str) -> RateLimitResult:
        return await self.limiter.status(identifier, self.policy.config_for(scope))

    async def reset(self, scope: RateLimitScope, identifier: str) -> None:
        await self.limiter.reset(identifier, self.policy.config_for(scope))

    async def check_email(self, email: str) -> RateLimitResult:
        """Consume one invitation attempt for the invitee address.

        Addresses are case-insensitive, so ``Bob@Example.com`` and
        ``bob@example.com`` share one budget.
        """
        return await self.check(RateLimitScope.INVITATION_EMAIL, normalize_email(email))

    async def tenant_status(self, tenant_id: str) -> dict[str, RateLimitResult]:
        return {"tenant": await self.status(RateLimitScope.INVITATION_TENANT, tenant_id)}

    async def admin_status(self, user_id: str) -> dict[str, RateLimitResult]:
        return {"admin": await self.status(RateLimitScope.INVITATION_ADMIN, user_id)}

    async def user_status(self, user_id: str) -> dict[str, RateLimitResult]:
        """Status of every per-user scope, keyed by scope name."""
        return {scope.value: await self.status(scope, user_id) for scope in USER_SCOPES}
