"""Tiered rate limiting on top of a shared counter store.

Three tiers are configured once at startup:
- general: configurable via RATE_LIMIT_REQUESTS / RATE_LIMIT_WINDOW
- auth: 5 requests per 15 minutes, strict to blunt credential stuffing
- api: 200 requests per hour

Each tier has its own key prefix in the store, so tiers never share budget.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from admission.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    Admitted,
    RateLimitDecision,
    Rejected,
)
from admission.core.config import FailureMode, RateLimitSettings
from admission.core.errors import RateLimitStoreError
from admission.utils.durations import parse_duration

logger = logging.getLogger(__name__)


class RateLimitTier(str, enum.Enum):
    GENERAL = "general"
    AUTH = "auth"
    API = "api"


@dataclass(frozen=True)
class TierPolicy:
    """Quota, window and key namespace of one tier."""

    tier: RateLimitTier
    limit: int
    window_ms: int
    prefix: str

    def key_for(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"


@dataclass(frozen=True)
class RateLimitConfig:
    """Immutable tier table shared by every middleware instance."""

    general: TierPolicy
    auth: TierPolicy = field(
        default_factory=lambda: TierPolicy(
            tier=RateLimitTier.AUTH,
            limit=5,
            window_ms=parse_duration("15 m"),
            prefix="auth_ratelimit",
        )
    )
    api: TierPolicy = field(
        default_factory=lambda: TierPolicy(
            tier=RateLimitTier.API,
            limit=200,
            window_ms=parse_duration("1 h"),
            prefix="api_ratelimit",
        )
    )
    failure_mode: FailureMode = "raise"

    def policy_for(self, tier: RateLimitTier) -> TierPolicy:
        return {
            RateLimitTier.GENERAL: self.general,
            RateLimitTier.AUTH: self.auth,
            RateLimitTier.API: self.api,
        }[RateLimitTier(tier)]


def build_rate_limit_config(rate_limit_settings: RateLimitSettings) -> RateLimitConfig:
    """Build the tier table from settings.

    Only the general tier is configurable; auth and api are fixed.
    """

    return RateLimitConfig(
        general=TierPolicy(
            tier=RateLimitTier.GENERAL,
            limit=rate_limit_settings.requests,
            window_ms=rate_limit_settings.window_ms,
            prefix="ratelimit",
        ),
        failure_mode=rate_limit_settings.failure_mode,
    )


class TieredRateLimiter:
    """Queries the store for a tier and identifier.

    The limiter holds no per-request state; correctness under concurrent
    access is delegated to the store's atomic check-and-increment.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: AbstractRateLimitStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store
        self._clock = clock

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def limit(self, tier: RateLimitTier, identifier: str) -> RateLimitDecision:
        """Record one request for ``identifier`` under ``tier``.

        Args:
            tier: Tier whose quota applies.
            identifier: Resolved client identifier.

        Returns:
            Admitted or Rejected decision.

        Raises:
            RateLimitStoreError: If the store fails and the failure mode is "raise".
        """

        policy = self.config.policy_for(tier)
        now_ms = self.now_ms()

        try:
            return await self.store.sliding_window(
                key=policy.key_for(identifier),
                limit=policy.limit,
                window_ms=policy.window_ms,
                now_ms=now_ms,
            )
        except RateLimitStoreError as exc:
            exc.details = {**(exc.details or {}), "tier": policy.tier.value}
            mode = self.config.failure_mode
            if mode == "raise":
                raise

            logger.error(
                "rate_limit.store_failure_policy_applied",
                extra={
                    "failure_mode": mode,
                    "tier": policy.tier.value,
                    "error_code": exc.code,
                },
            )
            reset_at_ms = now_ms + policy.window_ms
            if mode == "open":
                return Admitted(
                    limit=policy.limit, remaining=policy.limit, reset_at_ms=reset_at_ms
                )
            return Rejected(limit=policy.limit, remaining=0, reset_at_ms=reset_at_ms)

    async def close(self) -> None:
        await self.store.close()
