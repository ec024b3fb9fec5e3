from __future__ import annotations

from tenant_ratelimit.api.routes.health import router as health_router
from tenant_ratelimit.api.routes.invitations import router as invitations_router
from tenant_ratelimit.api.routes.rate_limits import router as rate_limits_router
from tenant_ratelimit.api.routes.tenants import router as tenants_router

__all__ = ["health_router", "invitations_router", "rate_limits_router", "tenants_router"]
