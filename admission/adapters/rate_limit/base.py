"""Rate limit store interfaces and decision types.

The limiter depends on this abstraction (not a concrete store) so the Redis
binding can be replaced by the in-process store in tests and local runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision(ABC):
    """Result of one sliding-window query.

    Attributes:
        limit: Max requests per window.
        remaining: Requests still available in the trailing window.
        reset_at_ms: UNIX epoch milliseconds when the current window ends.
    """

    limit: int
    remaining: int
    reset_at_ms: int

    def __post_init__(self) -> None:
        if not 0 <= self.remaining <= self.limit:
            raise ValueError(
                f"remaining must be within [0, {self.limit}], got {self.remaining}"
            )

    @property
    @abstractmethod
    def allowed(self) -> bool:
        """Whether the request may be forwarded."""


@dataclass(frozen=True)
class Admitted(RateLimitDecision):
    """The request fits under quota and may be forwarded."""

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected(RateLimitDecision):
    """The request exceeds quota and must not reach the handler."""

    @property
    def allowed(self) -> bool:
        return False


class AbstractRateLimitStore(ABC):
    """Interface for counter stores implementing a sliding window."""

    @abstractmethod
    async def sliding_window(
        self,
        *,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> RateLimitDecision:
        """Atomically check and record one request for ``key``.

        Args:
            key: Namespaced identifier, e.g. ``auth_ratelimit:1.2.3.4``.
            limit: Max requests allowed in the trailing window.
            window_ms: Window length in milliseconds.
            now_ms: Current UNIX time in milliseconds.

        Returns:
            Admitted or Rejected decision.

        Raises:
            RateLimitStoreError: If the store cannot be reached.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the store."""
