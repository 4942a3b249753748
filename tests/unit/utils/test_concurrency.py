"""Unit tests for the bounded worker pool and cancellation token."""

from __future__ import annotations

import asyncio
import threading

import pytest

from hashpkg.utils.concurrency import CancellationToken, WorkerPool


async def _value(value: int, delay: float = 0.0) -> int:
    await asyncio.sleep(delay)
    return value


async def _boom() -> int:
    raise ValueError("boom")


def test_cancellation_token_is_visible_across_threads() -> None:
    token = CancellationToken()
    assert not token.is_cancelled
    assert token.wait(0) is False

    thread = threading.Thread(target=token.cancel)
    thread.start()
    thread.join()

    assert token.is_cancelled
    assert token.wait(0) is True


def test_pool_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        WorkerPool(max_concurrency=0)


async def test_pool_reports_results_and_errors_by_key() -> None:
    pool: WorkerPool[str, int] = WorkerPool(max_concurrency=2)
    pool.submit("ok", _value(7))
    pool.submit("bad", _boom())

    completions = {item.key: item for item in await pool.drain()}

    assert completions["ok"].ok
    assert completions["ok"].result == 7
    assert isinstance(completions["bad"].error, ValueError)
    assert pool.active == 0


async def test_submit_beyond_capacity_is_refused() -> None:
    pool: WorkerPool[str, int] = WorkerPool(max_concurrency=1)
    pool.submit("a", _value(1, 0.01))
    assert not pool.has_capacity

    extra = _value(2)
    with pytest.raises(RuntimeError, match="worker pool is full"):
        pool.submit("b", extra)

    await pool.drain()
    assert pool.peak_active == 1


async def test_next_completed_lets_callers_refill() -> None:
    pool: WorkerPool[int, int] = WorkerPool(max_concurrency=2)
    pending = list(range(6))
    seen: list[int] = []

    while pending or pool.active:
        while pending and pool.has_capacity:
            key = pending.pop(0)
            pool.submit(key, _value(key, 0.001))
        for completion in await pool.next_completed():
            seen.append(completion.key)

    assert sorted(seen) == list(range(6))
    assert pool.peak_active == 2
    assert await pool.next_completed() == []


async def test_cancel_all_stops_in_flight_tasks() -> None:
    pool: WorkerPool[str, int] = WorkerPool(max_concurrency=2)
    pool.submit("slow", _value(1, 10.0))

    await pool.cancel_all()

    assert pool.active == 0
    assert await pool.drain() == []
