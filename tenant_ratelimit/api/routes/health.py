from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness probe including the shared counter store.

    An unreachable store reports ``degraded`` but still answers 200: the
    limiter fails open, so the service keeps admitting traffic.
    """

    store = request.app.state.rate_limit_store
    store_up = await store.ping()
    return {
        "status": "ok" if store_up else "degraded",
        "store": "up" if store_up else "down",
    }
