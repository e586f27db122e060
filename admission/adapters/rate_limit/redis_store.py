"""Redis-backed sliding-window counter store.

The whole check-and-increment runs as one Lua script, so Redis serializes
concurrent requests for the same key. Nothing is read in Python and written
back, which would lose or double-count requests under contention.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from admission.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    Admitted,
    RateLimitDecision,
    Rejected,
)
from admission.core.config import StoreSettings
from admission.core.errors import ConfigurationAppError, RateLimitStoreError

logger = logging.getLogger(__name__)


# KEYS[1] current bucket, KEYS[2] previous bucket
# ARGV[1] limit, ARGV[2] now_ms, ARGV[3] window_ms
# Returns remaining budget, or -1 when the request is rejected.
SLIDING_WINDOW_LUA = """
local current_key = KEYS[1]
local previous_key = KEYS[2]
local limit = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local window = tonumber(ARGV[3])

local current = tonumber(redis.call("GET", current_key) or "0")
local previous = tonumber(redis.call("GET", previous_key) or "0")

local elapsed = (now % window) / window
previous = math.floor((1 - elapsed) * previous)

if previous + current >= limit then
  return -1
end

local updated = redis.call("INCR", current_key)
if updated == 1 then
  redis.call("PEXPIRE", current_key, window * 2 + 1000)
end

return limit - (updated + previous)
"""


class RedisSlidingWindowStore(AbstractRateLimitStore):
    """Sliding-window store backed by a shared Redis instance."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._script = client.register_script(SLIDING_WINDOW_LUA)

    async def sliding_window(
        self,
        *,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> RateLimitDecision:
        current_window = now_ms // window_ms
        keys = [f"{key}:{current_window}", f"{key}:{current_window - 1}"]
        reset_at_ms = (current_window + 1) * window_ms

        try:
            reply = await self._script(keys=keys, args=[limit, now_ms, window_ms])
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "rate_limit_store.unavailable",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"store": "redis"},
            ) from exc

        remaining = int(reply)
        if remaining < 0:
            return Rejected(limit=limit, remaining=0, reset_at_ms=reset_at_ms)
        return Admitted(
            limit=limit,
            remaining=min(remaining, limit),
            reset_at_ms=reset_at_ms,
        )

    async def close(self) -> None:
        await self._client.aclose()


def build_redis_store(store_settings: StoreSettings) -> RedisSlidingWindowStore:
    """Create the Redis store from connection settings.

    The token is sent as the AUTH password; one timeout value bounds both
    connecting and each round-trip.

    Raises:
        ConfigurationAppError: If the URL cannot be parsed.
    """
    try:
        client = redis.from_url(
            store_settings.url,
            password=store_settings.token,
            socket_timeout=store_settings.timeout_seconds,
            socket_connect_timeout=store_settings.timeout_seconds,
            decode_responses=True,
        )
    except ValueError as exc:
        raise ConfigurationAppError(
            code="rate_limit_store_misconfigured",
            message=f"Invalid Redis URL: {exc}",
            details={"hint": "Set REDIS_URL to a redis:// or rediss:// URL"},
        ) from exc

    logger.info(
        "rate_limit_store.configured",
        extra={"timeout_s": store_settings.timeout_seconds},
    )
    return RedisSlidingWindowStore(client)
