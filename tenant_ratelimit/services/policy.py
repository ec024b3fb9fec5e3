"""Static scope → limit configuration.

Each scope is an independent rate limiting dimension with its own budget and
its own key namespace, so counters for different scopes never collide even
when the identifiers do (a user id used as both admin and acceptor, say).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from tenant_ratelimit.core.config import DAY_MS, HOUR_MS, RateLimitSettings

logger = logging.getLogger(__name__)


class RateLimitScope(str, Enum):
    """Named rate limiting dimensions."""

    TENANT_CREATION = "tenant_creation"
    TENANT_JOINING = "tenant_joining"
    INVITATION_ACCEPTANCE = "invitation_acceptance"
    INVITATION_TENANT = "invitation_tenant"
    INVITATION_ADMIN = "invitation_admin"
    INVITATION_IP = "invitation_ip"
    INVITATION_EMAIL = "invitation_email"


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding window parameters for one scope.

    Attributes:
        window_ms: Window length in milliseconds (> 0).
        max_requests: Admitted attempts per window (>= 1).
        key_prefix: Namespace prepended to scope identifiers.
    """

    window_ms: int
    max_requests: int
    key_prefix: str

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if not self.key_prefix:
            raise ValueError("key_prefix must be a non-empty string")

    @property
    def ttl_seconds(self) -> int:
        """Key TTL: the window rounded up to seconds plus a one minute buffer."""
        return math.ceil(self.window_ms / 1000) + 60

    def key_for(self, identifier: str) -> str:
        """Build the store key for a scope identifier."""
        return f"{self.key_prefix}:{identifier}"


DEFAULT_POLICY: Mapping[RateLimitScope, RateLimitConfig] = MappingProxyType(
    {
        RateLimitScope.TENANT_CREATION: RateLimitConfig(
            HOUR_MS, 3, "tenant_creation_rate_limit"
        ),
        RateLimitScope.TENANT_JOINING: RateLimitConfig(
            HOUR_MS, 10, "tenant_joining_rate_limit"
        ),
        RateLimitScope.INVITATION_ACCEPTANCE: RateLimitConfig(
            HOUR_MS, 10, "invitation_acceptance_rate_limit"
        ),
        RateLimitScope.INVITATION_TENANT: RateLimitConfig(
            DAY_MS, 100, "invitation_tenant_rate_limit"
        ),
        RateLimitScope.INVITATION_ADMIN: RateLimitConfig(
            HOUR_MS, 20, "invitation_admin_rate_limit"
        ),
        RateLimitScope.INVITATION_IP: RateLimitConfig(
            HOUR_MS, 10, "invitation_ip_rate_limit"
        ),
        RateLimitScope.INVITATION_EMAIL: RateLimitConfig(
            DAY_MS, 3, "invitation_email_rate_limit"
        ),
    }
)


class RateLimitPolicy:
    """Immutable mapping from scope to its ``RateLimitConfig``.

    Scopes missing from the supplied table resolve to ``DEFAULT_POLICY``.
    """

    def __init__(self, configs: Mapping[RateLimitScope, RateLimitConfig] | None = None) -> None:
        self._configs = MappingProxyType(dict(configs or {}))

    @classmethod
    def from_settings(cls, rate_limit_settings: RateLimitSettings) -> "RateLimitPolicy":
        """Build a policy from ``<SCOPE>_RATE_LIMIT_*`` settings.

        Key prefixes are fixed per scope and never configurable, so changing
        limits can't accidentally merge two scopes' counters.
        """
        configs: dict[RateLimitScope, RateLimitConfig] = {}
        for scope, default in DEFAULT_POLICY.items():
            limits = rate_limit_settings.limits_for(scope.value)
            if limits is None:
                continue
            window_ms, max_requests = limits
            configs[scope] = RateLimitConfig(
                window_ms=window_ms,
                max_requests=max_requests,
                key_prefix=default.key_prefix,
            )
        return cls(configs)

    def config_for(self, scope: RateLimitScope) -> RateLimitConfig:
        config = self._configs.get(scope)
        if config is None:
            logger.debug(
                "rate_limit.policy_default_used",
                extra={"scope": scope.value},
            )
            return DEFAULT_POLICY[scope]
        return config

    def as_dict(self) -> dict[str, dict[str, int | str]]:
        """Return the resolved table, e.g. for diagnostics endpoints."""
        table: dict[str, dict[str, int | str]] = {}
        for scope in RateLimitScope:
            cfg = self.config_for(scope)
            table[scope.value] = {
                "window_ms": cfg.window_ms,
                "max_requests": cfg.max_requests,
                "key_prefix": cfg.key_prefix,
            }
        return table
