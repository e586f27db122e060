"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Settings are built at import time and the store endpoint is required, so
the environment must be populated before any ``admission`` import.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("REDIS_TOKEN", "test-token-123")
os.environ.setdefault("LOG_LEVEL", "debug")

from typing import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from admission.adapters.rate_limit.in_memory import InMemorySlidingWindowStore
from admission.core.app_factory import create_app
from admission.core.rate_limit import (
    RateLimitConfig,
    RateLimitTier,
    TieredRateLimiter,
    TierPolicy,
)

# 2026-01-01T00:00:00Z, aligned to hour and 15-minute buckets
START_TIME = 1_767_225_600.0


class FakeClock:
    """Manually advanced time source returning UNIX seconds."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySlidingWindowStore:
    return InMemorySlidingWindowStore()


@pytest.fixture
def rate_limit_config() -> RateLimitConfig:
    """Default tier table: general 100 / 1 h, auth 5 / 15 m, api 200 / 1 h."""
    return RateLimitConfig(
        general=TierPolicy(
            tier=RateLimitTier.GENERAL,
            limit=100,
            window_ms=60 * 60 * 1000,
            prefix="ratelimit",
        )
    )


@pytest.fixture
def limiter(
    rate_limit_config: RateLimitConfig,
    store: InMemorySlidingWindowStore,
    clock: FakeClock,
) -> TieredRateLimiter:
    return TieredRateLimiter(rate_limit_config, store, clock=clock)


@pytest.fixture
def app(limiter: TieredRateLimiter) -> FastAPI:
    return create_app(limiter=limiter)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client that returns 5xx responses instead of re-raising."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def client_for() -> Callable[[FastAPI], TestClient]:
    def _build(app: FastAPI) -> TestClient:
        return TestClient(app, raise_server_exceptions=False)

    return _build
