from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check; never rate limited.

    Also reports the active tier table so operators can confirm the quotas
    a deployment is running with.

    Returns:
        dict: ``status`` plus limit and window (ms) for each tier.
    """

    config = request.app.state.limiter.config
    return {
        "status": "ok",
        "tiers": {
            policy.tier.value: {"limit": policy.limit, "window_ms": policy.window_ms}
            for policy in (config.general, config.auth, config.api)
        },
    }
