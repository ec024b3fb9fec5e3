"""Request identity as seen by the rate limiting layer.

Authentication happens upstream. An authenticating middleware may place a
``Principal`` on ``request.state.principal``; otherwise the identity headers
forwarded by the trusted gateway are used.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

USER_ID_HEADER = "X-User-ID"
TENANT_ID_HEADER = "X-Tenant-ID"
ROLES_HEADER = "X-User-Roles"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller. Any field may be missing for partial identities."""

    user_id: str | None = None
    tenant_id: str | None = None
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_admin(self) -> bool:
        return any("admin" in role.lower() for role in self.roles)


def _parse_roles(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(role.strip() for role in raw.split(",") if role.strip())


def get_principal(request: Request) -> Principal:
    """Resolve the caller of ``request``."""

    principal = getattr(request.state, "principal", None)
    if isinstance(principal, Principal):
        return principal

    return Principal(
        user_id=request.headers.get(USER_ID_HEADER) or None,
        tenant_id=request.headers.get(TENANT_ID_HEADER) or None,
        roles=_parse_roles(request.headers.get(ROLES_HEADER)),
    )


def get_client_ip(request: Request) -> str:
    """Best-effort client address: first forwarded hop, real-ip, then peer."""

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"
