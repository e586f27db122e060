"""HTTP admission middleware: correlation, identity and tiered rate limiting.

Each request moves through ``start -> identified -> limited`` and ends either
admitted (forwarded to the route) or rejected (429, route never called).
Quota headers and the transaction id are set on both outcomes so clients can
throttle themselves.

Usage:
    limiter = TieredRateLimiter(build_rate_limit_config(settings.rate_limit), store)
    app.middleware("http")(
        create_rate_limit_middleware(limiter, tier=RateLimitTier.GENERAL, path_prefix="/api")
    )
"""

from __future__ import annotations

import inspect
import math
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Union

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from admission.adapters.rate_limit.base import RateLimitDecision
from admission.core.context import TransactionContext, begin_transaction
from admission.core.identity import IdentifierFunc, resolve_identifier
from admission.core.logging import transaction_scope
from admission.core.rate_limit import RateLimitTier, TieredRateLimiter

OnLimitFunc = Callable[[Request, RateLimitDecision], Union[Response, Awaitable[Response]]]
CallNext = Callable[[Request], Awaitable[Response]]

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_reset(reset_at_ms: int) -> str:
    """Render an epoch-millisecond timestamp as ISO-8601 UTC (``...Z``)."""

    moment = _EPOCH + timedelta(milliseconds=reset_at_ms)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_quota_headers(decision: RateLimitDecision, transaction_id: str) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": format_reset(decision.reset_at_ms),
        "X-Transaction-ID": transaction_id,
    }


def _apply_headers(response: Response, headers: dict[str, str]) -> None:
    for name, value in headers.items():
        response.headers.setdefault(name, value)


def retry_after_seconds(decision: RateLimitDecision, now_ms: int) -> int:
    return max(0, math.ceil((decision.reset_at_ms - now_ms) / 1000))


def create_rate_limit_middleware(
    limiter: TieredRateLimiter,
    *,
    tier: RateLimitTier = RateLimitTier.GENERAL,
    identifier: IdentifierFunc | None = None,
    on_limit: OnLimitFunc | None = None,
    path_prefix: str | None = None,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Build an HTTP middleware enforcing one rate limit tier.

    Args:
        limiter: Limiter bound to the shared tier table and store.
        tier: Tier applied to every request this instance sees.
        identifier: Optional function deriving the client identifier from the
            request (sync or async). Defaults to proxy-header IP resolution.
        on_limit: Optional function building the rejection response. Quota
            headers are added to its response when it does not set them.
        path_prefix: Only requests under this path are limited; others pass
            straight through.

    Returns:
        Middleware callable for ``app.middleware("http")``.
    """

    tier = RateLimitTier(tier)

    async def rate_limit_middleware(request: Request, call_next: CallNext) -> Response:
        if path_prefix and not request.url.path.startswith(path_prefix):
            return await call_next(request)

        ctx = begin_transaction(request)
        with transaction_scope(ctx.transaction_id):
            return await _admit(request, call_next, ctx)

    async def _admit(
        request: Request, call_next: CallNext, ctx: TransactionContext
    ) -> Response:
        client_id: str | None = None

        try:
            client_id = await resolve_identifier(request, identifier)
            ctx.logger.info(
                "rate_limit.check",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "identifier": client_id,
                    "user_agent": request.headers.get("user-agent"),
                    "tier": tier.value,
                },
            )
            decision = await limiter.limit(tier, client_id)
        except Exception as exc:
            ctx.logger.error(
                "rate_limit.middleware_error",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "identifier": client_id,
                    "tier": tier.value,
                },
            )
            raise

        headers = build_quota_headers(decision, ctx.transaction_id)

        if not decision.allowed:
            ctx.logger.warning(
                "rate_limit.exceeded",
                extra={
                    "identifier": client_id,
                    "limit": decision.limit,
                    "remaining": decision.remaining,
                    "reset": decision.reset_at_ms,
                    "tier": tier.value,
                },
            )

            if on_limit is not None:
                response = on_limit(request, decision)
                if inspect.isawaitable(response):
                    response = await response
                _apply_headers(response, headers)
                return response

            retry_after = retry_after_seconds(decision, limiter.now_ms())
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many requests",
                    "message": RATE_LIMIT_MESSAGE,
                    "retryAfter": retry_after,
                },
                headers={**headers, "Retry-After": str(retry_after)},
            )

        ctx.logger.info(
            "rate_limit.passed",
            extra={
                "identifier": client_id,
                "remaining": decision.remaining,
                "tier": tier.value,
            },
        )

        response = await call_next(request)
        # A stacked inner tier (or its rejection) has already set its own quota.
        _apply_headers(response, headers)
        return response

    return rate_limit_middleware
