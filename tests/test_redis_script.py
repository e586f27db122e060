"""Runs the sliding-window Lua script against an in-process Redis.

fakeredis executes the script for real, so these tests cover the algorithm
and its atomicity rather than the client plumbing.
"""

import asyncio

import fakeredis
import pytest
import pytest_asyncio

from admission.adapters.rate_limit.base import Admitted, Rejected
from admission.adapters.rate_limit.redis_store import RedisSlidingWindowStore

WINDOW_MS = 900_000
# 2026-01-01T00:00:00Z, aligned to a 15-minute bucket
T0 = 1_767_225_600_000
KEY = "auth_ratelimit:1.2.3.4"


@pytest_asyncio.fixture
async def client():
    client = fakeredis.FakeAsyncRedis()
    yield client
    await client.aclose()


@pytest.fixture
def store(client) -> RedisSlidingWindowStore:
    return RedisSlidingWindowStore(client)


async def _hit(store: RedisSlidingWindowStore, now_ms: int, *, limit: int = 5, key: str = KEY):
    return await store.sliding_window(key=key, limit=limit, window_ms=WINDOW_MS, now_ms=now_ms)


@pytest.mark.asyncio
async def test_remaining_counts_down_then_rejects(store) -> None:
    decisions = [await _hit(store, T0) for _ in range(6)]

    assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0, 0]
    assert isinstance(decisions[-1], Rejected)
    assert {d.reset_at_ms for d in decisions} == {T0 + WINDOW_MS}


@pytest.mark.asyncio
async def test_concurrent_burst_admits_exactly_limit(store) -> None:
    decisions = await asyncio.gather(*(_hit(store, T0 + 10) for _ in range(8)))

    assert sum(isinstance(d, Admitted) for d in decisions) == 5
    assert sum(isinstance(d, Rejected) for d in decisions) == 3
    assert sorted(d.remaining for d in decisions if d.allowed) == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_rejected_requests_are_not_counted(store, client) -> None:
    for _ in range(8):
        await _hit(store, T0)

    assert int(await client.get(f"{KEY}:{T0 // WINDOW_MS}")) == 5


@pytest.mark.asyncio
async def test_previous_window_is_weighted(store) -> None:
    for _ in range(5):
        await _hit(store, T0)

    # Halfway through the next bucket floor(0.5 * 5) = 2 requests still count.
    decision = await _hit(store, T0 + WINDOW_MS + WINDOW_MS // 2)

    assert isinstance(decision, Admitted)
    assert decision.remaining == 2
    assert decision.reset_at_ms == T0 + 2 * WINDOW_MS


@pytest.mark.asyncio
async def test_full_previous_window_blocks_next_bucket_start(store) -> None:
    for _ in range(5):
        await _hit(store, T0 + WINDOW_MS - 1)

    assert isinstance(await _hit(store, T0 + WINDOW_MS), Rejected)


@pytest.mark.asyncio
async def test_bucket_expiry_covers_two_windows(store, client) -> None:
    await _hit(store, T0)

    ttl = await client.pttl(f"{KEY}:{T0 // WINDOW_MS}")

    assert 0 < ttl <= WINDOW_MS * 2 + 1000


@pytest.mark.asyncio
async def test_keys_are_isolated(store) -> None:
    for _ in range(5):
        await _hit(store, T0, key="auth_ratelimit:a")

    decision = await _hit(store, T0, key="auth_ratelimit:b")

    assert decision.allowed
    assert decision.remaining == 4
