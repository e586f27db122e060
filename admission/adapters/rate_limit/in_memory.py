"""In-process sliding-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Production deployments use the Redis store.
- Thread-safe: uses a lock around shared state, so the check and increment
  happen as one step like the Redis script.
"""

from __future__ import annotations

import math
import threading

from admission.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    Admitted,
    RateLimitDecision,
    Rejected,
)


class InMemorySlidingWindowStore(AbstractRateLimitStore):
    """Sliding window approximated from two adjacent fixed buckets.

    The previous bucket's count is weighted by how much of it still overlaps
    the trailing window, so a burst straddling a bucket boundary cannot
    double the quota.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counts: dict[str, int] = {}

    async def sliding_window(
        self,
        *,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> RateLimitDecision:
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        current_window = now_ms // window_ms
        current_key = f"{key}:{current_window}"
        previous_key = f"{key}:{current_window - 1}"
        reset_at_ms = (current_window + 1) * window_ms

        with self._lock:
            self._evict_stale_locked(key, current_window)

            current = self._counts.get(current_key, 0)
            elapsed = (now_ms % window_ms) / window_ms
            previous = math.floor((1 - elapsed) * self._counts.get(previous_key, 0))

            if previous + current >= limit:
                return Rejected(limit=limit, remaining=0, reset_at_ms=reset_at_ms)

            current += 1
            self._counts[current_key] = current

        remaining = max(0, limit - (current + previous))
        return Admitted(limit=limit, remaining=remaining, reset_at_ms=reset_at_ms)

    async def close(self) -> None:
        with self._lock:
            self._counts.clear()

    def _evict_stale_locked(self, key: str, current_window: int) -> None:
        prefix = f"{key}:"
        stale = [
            k
            for k in self._counts
            if k.startswith(prefix) and int(k.rsplit(":", 1)[1]) < current_window - 1
        ]
        for k in stale:
            del self._counts[k]
