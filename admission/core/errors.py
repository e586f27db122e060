"""Application-level exception types.

This module defines domain errors used across adapters and middleware,
enabling consistent error handling, logging, and API responses. Each error
carries the HTTP status the funnel uses to pick a log severity and the
response status code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    store: str
    tier: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code: ClassVar[int] = 500

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when startup configuration is unusable."""


class RateLimitStoreError(AppError):
    """Raised when the remote counter store is unreachable or errors."""

    status_code = 503
