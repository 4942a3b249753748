"""
hashpkg — concurrent fetch scheduler

File: src/hashpkg/resolver/fetch.py
Last updated: 2026-10-19

Purpose
- Fetch the full transitive dependency closure of a root package with bounded parallelism.

Functional requirements
- At most ``max_parallel`` fetches are in flight at any moment.
- Newly fetched manifests feed their own dependencies back into the queue.
- The first failure stops dispatch; in-flight fetches drain to completion before it is raised.
- Failures seen while draining are logged and attached as ``secondary_errors``.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from hashpkg.constants import DEFAULT_MAX_PARALLEL
from hashpkg.errors import FetchCancelledError, PackageFetchError
from hashpkg.resolver.queue import DependencyQueue
from hashpkg.observability.progress import COUNTER_ALREADY_PRESENT
from hashpkg.store.accessor import find_package_in_dir, hash_dir
from hashpkg.utils.concurrency import CancellationToken, WorkerPool

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from contextlib import AbstractContextManager
    from pathlib import Path

    from hashpkg.domain.models import Dependency, Package
    from hashpkg.store.accessor import PackageStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FetchReport:
    """Outcome of one closure fetch."""

    fetched: tuple[str, ...]
    visited: int
    peak_active: int
    located: Mapping[str, Path] = field(default_factory=dict)

    def directory(self, location: Path, ref: str) -> Path:
        """Where ``ref`` lives after the fetch: an install root that had it, or ``location``."""

        return self.located.get(ref) or hash_dir(location, ref)


@dataclass(slots=True)
class FailureLog:
    """First-error bookkeeping shared by the closure fetch and the lock installer."""

    cancel: CancellationToken = field(default_factory=CancellationToken)
    first_ref: str | None = None
    first_error: BaseException | None = None
    secondary: list[BaseException] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.first_error is not None

    def record(self, ref: str, error: BaseException) -> None:
        if self.first_error is None:
            self.first_ref = ref
            self.first_error = error
            self.cancel.cancel()
            logger.error("parallel_fetch_failed", ref=ref, error=str(error))
            return
        logger.error("parallel_fetch_error", ref=ref, error=str(error))
        if not isinstance(error, FetchCancelledError):
            self.secondary.append(error)

    def raise_if_failed(self) -> None:
        error = self.first_error
        if error is None:
            return
        if isinstance(error, PackageFetchError):
            raise error.with_secondary(self.secondary)
        raise PackageFetchError(
            self.first_ref or "", error, secondary_errors=self.secondary
        ) from error


async def run_blocking(executor: Executor, func: Callable[..., T], *args: Any) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, func, *args)


class FetchScheduler:
    """Drains a ``DependencyQueue`` through a bounded pool of fetch workers.

    Each worker runs the blocking ``PackageStore.fetch_to`` on a thread pool
    sized ``max_parallel``; the controller loop runs on asyncio and is the only
    place that touches the queue.
    """

    def __init__(
        self,
        packages: PackageStore,
        *,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        executor: Executor | None = None,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self.packages = packages
        self.max_parallel = max_parallel
        self._executor = executor

    def fetch_closure(self, root: Package, location: Path) -> FetchReport:
        """Fetch every package reachable from ``root`` into ``location``."""

        return asyncio.run(self.run(root, location))

    async def run(self, root: Package, location: Path) -> FetchReport:
        progress = self.packages.progress
        queue = DependencyQueue()
        progress.add_todo(queue.enqueue(root))

        pool: WorkerPool[Dependency, Package] = WorkerPool(self.max_parallel)
        failures = FailureLog()
        fetched: list[str] = []
        located: dict[str, Path] = {}

        with self.executor() as executor:
            try:
                while pool.active or (queue and not failures.failed):
                    while queue and pool.has_capacity and not failures.failed:
                        dependency = queue.dequeue()
                        if dependency is None:
                            break
                        dest = hash_dir(location, dependency.hash)
                        installed = None if dest.exists() else self._installed(dependency, root)
                        if installed is not None:
                            located[dependency.hash] = installed
                            package = find_package_in_dir(installed)
                            progress.inc(COUNTER_ALREADY_PRESENT)
                            progress.add_todo(queue.enqueue(package))
                            continue
                        progress.start(dependency.hash, label=dependency.name, phase="fetch")
                        pool.submit(
                            dependency,
                            run_blocking(
                                executor,
                                self.packages.fetch_to,
                                dependency.hash,
                                dest,
                                failures.cancel,
                            ),
                        )

                    for completion in await pool.next_completed():
                        dependency = completion.key
                        if completion.error is not None:
                            progress.fail(dependency.hash, detail=str(completion.error))
                            failures.record(dependency.hash, completion.error)
                            continue
                        fetched.append(dependency.hash)
                        progress.finish(dependency.hash)
                        if completion.result is not None and not failures.failed:
                            progress.add_todo(queue.enqueue(completion.result))
            except BaseException:
                failures.cancel.cancel()
                await pool.cancel_all()
                raise

        failures.raise_if_failed()
        logger.info(
            "fetch_closure_finished",
            root_package=root.name,
            fetched=len(fetched),
            located=len(located),
            visited=queue.seen_count,
            peak_active=pool.peak_active,
        )
        return FetchReport(
            fetched=tuple(fetched),
            visited=queue.seen_count,
            peak_active=pool.peak_active,
            located=located,
        )

    def _installed(self, dependency: Dependency, root: Package) -> Path | None:
        """Hash directory of an already installed copy in the local or global root."""

        directory = self.packages.locate(dependency.hash, root.language)
        if directory is not None:
            logger.debug("fetch_skipped_installed", ref=dependency.hash, path=str(directory))
        return directory

    def executor(self) -> AbstractContextManager[Executor]:
        """Thread pool for blocking fetches; an injected executor is not shut down."""

        if self._executor is not None:
            return nullcontext(self._executor)
        return ThreadPoolExecutor(
            max_workers=self.max_parallel, thread_name_prefix="hashpkg-fetch"
        )


__all__ = [
    "FailureLog",
    "FetchReport",
    "FetchScheduler",
    "run_blocking",
]
