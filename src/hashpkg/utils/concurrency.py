"""Concurrency primitives shared by the fetch scheduler and the lock installer."""

from __future__ import annotations

import asyncio
import threading
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Coroutine

K = TypeVar("K")
T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag, safe to read from worker threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` seconds; returns ``True`` once cancelled."""

        return self._event.wait(timeout)


@dataclass(frozen=True, slots=True)
class Completion(Generic[K, T]):
    """Outcome of one pool task."""

    key: K
    result: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class WorkerPool(Generic[K, T]):
    """Bounded set of in-flight tasks that accepts new work while others run.

    Work is discovered while the pool drains, so callers ``submit`` whenever
    ``has_capacity`` is true and collect results with ``next_completed``.
    ``submit`` refuses work beyond ``max_concurrency``.
    """

    max_concurrency: int
    _tasks: dict[asyncio.Task[T], K] = field(init=False, repr=False, default_factory=dict)
    _peak: int = field(init=False, repr=False, default=0)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")

    @property
    def active(self) -> int:
        return len(self._tasks)

    @property
    def peak_active(self) -> int:
        return self._peak

    @property
    def has_capacity(self) -> bool:
        return len(self._tasks) < self.max_concurrency

    def submit(self, key: K, coroutine: Coroutine[Any, Any, T]) -> None:
        if not self.has_capacity:
            coroutine.close()
            raise RuntimeError(f"worker pool is full ({self.max_concurrency} active)")
        task: asyncio.Task[T] = asyncio.create_task(coroutine)
        self._tasks[task] = key
        self._peak = max(self._peak, len(self._tasks))

    async def next_completed(self) -> list[Completion[K, T]]:
        """Wait until at least one task finishes and return every finished outcome."""

        if not self._tasks:
            return []
        done, _ = await asyncio.wait(tuple(self._tasks), return_when=asyncio.FIRST_COMPLETED)
        completions: list[Completion[K, T]] = []
        for task in done:
            key = self._tasks.pop(task)
            if task.cancelled():
                completions.append(
                    Completion(key=key, error=asyncio.CancelledError("worker task cancelled"))
                )
                continue
            exc = task.exception()
            if exc is not None:
                completions.append(Completion(key=key, error=exc))
            else:
                completions.append(Completion(key=key, result=task.result()))
        return completions

    async def drain(self) -> list[Completion[K, T]]:
        """Wait for every in-flight task to finish, without cancelling any."""

        completions: list[Completion[K, T]] = []
        while self._tasks:
            completions.extend(await self.next_completed())
        return completions

    async def cancel_all(self) -> None:
        tasks = tuple(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            with suppress(Exception):
                await asyncio.gather(*tasks, return_exceptions=True)


__all__ = [
    "CancellationToken",
    "Completion",
    "WorkerPool",
]
