"""Application factory for the FastAPI app.

Builds the rate limiting object graph once per application (store → limiter
→ policy → service → guard) and hands it to requests through ``app.state``
instead of module-level singletons. The settings the app was created with are
kept there too, so auth and request correlation follow them.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from tenant_ratelimit.adapters.rate_limit import AbstractRateLimitStore, create_rate_limit_store
from tenant_ratelimit.api.routes import (
    health_router,
    invitations_router,
    rate_limits_router,
    tenants_router,
)
from tenant_ratelimit.core.config import Settings, settings as default_settings
from tenant_ratelimit.core.exception_handlers import setup_exception_handlers
from tenant_ratelimit.core.logging import configure_logging
from tenant_ratelimit.core.middleware import request_id_middleware
from tenant_ratelimit.core.openapi import apply_openapi_customizations
from tenant_ratelimit.core.rate_limit import RateLimitGuard
from tenant_ratelimit.services.policy import RateLimitPolicy
from tenant_ratelimit.services.rate_limit_service import RateLimitService
from tenant_ratelimit.services.sliding_window import SlidingWindowLimiter

logger = logging.getLogger(__name__)


def install_rate_limiting(
    app: FastAPI,
    store: AbstractRateLimitStore,
    cfg: Settings,
) -> RateLimitGuard:
    """Wire the limiter graph for ``store`` into ``app.state``."""
    policy = RateLimitPolicy.from_settings(cfg.rate_limit)
    service = RateLimitService(SlidingWindowLimiter(store), policy)
    guard = RateLimitGuard(
        service,
        limit_source=cfg.app.rate_limit_limit_header_source,
        include_headers=cfg.app.rate_limit_include_headers,
        enabled=cfg.app.rate_limit_enabled,
    )

    app.state.rate_limit_store = store
    app.state.rate_limit_service = service
    app.state.rate_limit_guard = guard
    return guard


def create_app(
    app_settings: Settings | None = None,
    store: AbstractRateLimitStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings container; defaults to the global settings.
        store: Pre-built counter store (tests inject in-memory or fakeredis
            stores); built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.rate_limit_store.close()

    app = FastAPI(
        title="Tenant Rate Limit API",
        description=(
            "Sliding window rate limiting for invitation and tenant management "
            "operations, enforced per tenant, admin, user, IP and email address "
            "with counters shared across processes."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    install_rate_limiting(app, store or create_rate_limit_store(cfg), cfg)

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(invitations_router, prefix="/v1")
    app.include_router(tenants_router, prefix="/v1")
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    logger.info(
        "app.created",
        extra={
            "store_backend": type(app.state.rate_limit_store).__name__,
            "rate_limit_enabled": cfg.app.rate_limit_enabled,
        },
    )
    return app
