from __future__ import annotations

"""Application factory for the admission service.

Centralizes app construction (limiter, middleware, handlers, routers) so
tests can build an isolated app around an in-process store.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from admission.adapters.rate_limit.redis_store import build_redis_store
from admission.api.routes import health_router, ping_router
from admission.core.config import Settings, settings as default_settings
from admission.core.exception_handlers import setup_exception_handlers
from admission.core.identity import IdentifierFunc
from admission.core.logging import configure_logging
from admission.core.middleware import create_rate_limit_middleware
from admission.core.rate_limit import (
    RateLimitTier,
    TieredRateLimiter,
    build_rate_limit_config,
)

API_PREFIX = "/api"


def create_app(
    *,
    app_settings: Settings | None = None,
    limiter: TieredRateLimiter | None = None,
    identifier: IdentifierFunc | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the process settings.
        limiter: Tiered limiter; defaults to one built from ``RATE_LIMIT_*``
            settings over the Redis store configured by ``REDIS_*``.
        identifier: Optional client identifier override for the general tier.

    Returns:
        Configured app with the admission middleware on ``/api`` routes.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    if limiter is None:
        limiter = TieredRateLimiter(
            build_rate_limit_config(cfg.rate_limit),
            build_redis_store(cfg.store),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await limiter.close()

    app = FastAPI(
        title="Request Admission Service",
        description=(
            "Assigns each request a transaction id, enforces sliding-window "
            "rate limits per client against a shared Redis store, and returns "
            "quota headers and uniform JSON errors."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter

    # Middleware
    app.middleware("http")(
        create_rate_limit_middleware(
            limiter,
            tier=RateLimitTier.GENERAL,
            identifier=identifier,
            path_prefix=API_PREFIX,
        )
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(ping_router, prefix=API_PREFIX)
    app.include_router(health_router)

    return app
