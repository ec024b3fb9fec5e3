"""Pydantic schemas for guarded operations and rate limit administration."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, Field

from tenant_ratelimit.services.sliding_window import RateLimitResult


class RateLimitStatus(BaseModel):
    """Window usage for one scope key."""

    allowed: bool = Field(..., description="Whether the next attempt would be admitted.")
    remaining: int = Field(..., ge=0, description="Attempts left in the current window.")
    total_hits: int = Field(..., ge=0, description="Attempts counted in the current window.")
    reset_time: int = Field(..., description="Window end in epoch milliseconds.")
    reset_at: datetime = Field(..., description="Window end as an ISO-8601 UTC timestamp.")

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateLimitStatus":
        return cls(
            allowed=result.allowed,
            remaining=result.remaining,
            total_hits=result.total_hits,
            reset_time=result.reset_time,
            reset_at=datetime.fromtimestamp(result.reset_time / 1000, tz=timezone.utc),
        )


class ScopedStatusResponse(BaseModel):
    """Status of several scopes keyed by a label (``tenant``, ``admin``, scope name)."""

    scopes: Dict[str, RateLimitStatus] = Field(default_factory=dict)

    @classmethod
    def from_results(cls, results: dict[str, RateLimitResult]) -> "ScopedStatusResponse":
        return cls(scopes={name: RateLimitStatus.from_result(r) for name, r in results.items()})


class ScopeConfigResponse(BaseModel):
    window_ms: int
    max_requests: int
    key_prefix: str


class PolicyResponse(BaseModel):
    """Resolved scope configuration table."""

    scopes: Dict[str, ScopeConfigResponse]


class CreateInvitationRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320, description="Invitee email address.")
    role: str | None = Field(default=None, description="Role granted on acceptance.")


class CreateTenantRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class OperationAccepted(BaseModel):
    """Acknowledgement that an operation passed rate limiting.

    The business action itself is performed by downstream services.
    """

    status: str = Field("accepted")
    operation: str
    tenant_id: str | None = None
