"""
hashpkg — install pipeline

File: src/hashpkg/resolver/install.py
Last updated: 2026-10-19

Purpose
- Install a package's dependency closure: fetch everything, then run post-install hooks.
- Install a lock file plan into the per-project cache and link it into install paths.

Functional requirements
- Phase 1 fetches the whole closure before phase 2 runs any hook.
- Phase 2 runs each package's hook once, after the hooks of all its dependencies.
- A ``.meta/post-install`` marker makes re-installs skip hooks that already ran.
- Any hook failure aborts phase 2; already installed packages stay on disk.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from hashpkg.constants import (
    DEFAULT_MAX_PARALLEL,
    HOOK_MARKER_DIR,
    HOOK_POST_INSTALL,
    LOCK_CACHE_DIR,
)
from hashpkg.domain.models import Dependency, Package
from hashpkg.errors import DependencyCycleError, HookError
from hashpkg.observability.progress import COUNTER_HOOKS_RUN
from hashpkg.resolver.fetch import FailureLog, FetchScheduler, run_blocking
from hashpkg.resolver.queue import DependencyQueue
from hashpkg.store.accessor import find_package_in_dir, hash_dir, package_dir
from hashpkg.utils.concurrency import WorkerPool
from hashpkg.utils.fs import replace_symlink

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from hashpkg.domain.models import LockDep, LockFile
    from hashpkg.hooks.runner import HookRunner
    from hashpkg.store.accessor import InstallRoots, PackageStore
    from hashpkg.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class InstallReport:
    root: str
    location: Path
    fetched: tuple[str, ...]
    hooked: tuple[str, ...]
    skipped: tuple[str, ...]
    peak_active: int
    located: Mapping[str, Path] = field(default_factory=dict)

    def directory(self, ref: str) -> Path:
        """Hash directory ``ref`` was installed to, or found in."""

        return self.located.get(ref) or hash_dir(self.location, ref)


@dataclass(frozen=True, slots=True)
class _LockWork:
    language: str
    name: str
    ref: str
    link: Path
    cache: Path
    nested: Mapping[str, Mapping[str, LockDep]]


@dataclass(slots=True)
class _HookWalk:
    location: Path
    global_install: bool
    located: Mapping[str, Path]
    loaded: dict[str, Package] = field(default_factory=dict)
    visiting: set[str] = field(default_factory=set)
    hooked: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def directory(self, ref: str) -> Path:
        return self.located.get(ref) or hash_dir(self.location, ref)


@dataclass(slots=True)
class _HookFrame:
    ref: str
    directory: Path
    package: Package
    children: Iterator[Dependency]


def hook_ran(directory: Path, hook: str) -> bool:
    return (directory / HOOK_MARKER_DIR / hook).exists()


def mark_hook_ran(directory: Path, hook: str) -> None:
    marker_dir = directory / HOOK_MARKER_DIR
    marker_dir.mkdir(parents=True, exist_ok=True)
    (marker_dir / hook).touch()


class InstallPipeline:
    """Two-phase installer over the dependency closure of one root package."""

    def __init__(
        self,
        packages: PackageStore,
        hooks: HookRunner,
        *,
        install_roots: InstallRoots | None = None,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        scheduler: FetchScheduler | None = None,
    ) -> None:
        self.packages = packages
        self.hooks = hooks
        self.max_parallel = max_parallel
        self._install_roots = install_roots
        self._scheduler = scheduler or FetchScheduler(packages, max_parallel=max_parallel)

    def install(
        self,
        root: Package,
        location: Path,
        *,
        global_install: bool = False,
    ) -> InstallReport:
        """Fetch ``root``'s closure into ``location``, then run hooks leaf-first."""

        location = Path(location)
        logger.info("install_started", root_package=root.name, location=str(location))
        fetch_report = self._scheduler.fetch_closure(root, location)
        hooked, skipped = self._post_install(
            root, location, global_install, fetch_report.located
        )
        logger.info(
            "install_finished",
            root_package=root.name,
            fetched=len(fetch_report.fetched),
            hooked=len(hooked),
            skipped=len(skipped),
        )
        return InstallReport(
            root=root.name,
            location=location,
            fetched=fetch_report.fetched,
            hooked=tuple(hooked),
            skipped=tuple(skipped),
            peak_active=fetch_report.peak_active,
            located=dict(fetch_report.located),
        )

    def install_ref(
        self,
        ref: str,
        location: Path,
        *,
        name: str = "",
        global_install: bool = False,
    ) -> tuple[Package, InstallReport]:
        """Install package ``ref`` itself along with its closure."""

        anchor = Package(name=name or ref, dependencies=(Dependency(name=name or ref, hash=ref),))
        report = self.install(anchor, location, global_install=global_install)
        return find_package_in_dir(report.directory(ref)), report

    def _post_install(
        self,
        root: Package,
        location: Path,
        global_install: bool,
        located: Mapping[str, Path],
    ) -> tuple[list[str], list[str]]:
        progress = self.packages.progress
        queue = DependencyQueue()
        progress.add_todo(queue.enqueue(root))

        walk = _HookWalk(location=location, global_install=global_install, located=located)
        while (dependency := queue.dequeue()) is not None:
            package = self._ensure_hooked(dependency.hash, walk)
            progress.add_todo(queue.enqueue(package))
        return walk.hooked, walk.skipped

    def _ensure_hooked(self, ref: str, walk: _HookWalk) -> Package:
        """Hook ``ref`` after every package below it, walking with an explicit stack."""

        done = walk.loaded.get(ref)
        if done is not None:
            return done

        path: list[_HookFrame] = [self._enter(ref, walk)]
        while path:
            frame = path[-1]
            child = next(frame.children, None)
            if child is None:
                path.pop()
                walk.visiting.discard(frame.ref)
                self._maybe_run_post_install(frame.ref, frame.package, frame.directory, walk)
                walk.loaded[frame.ref] = frame.package
                continue
            if child.hash in walk.loaded:
                continue
            if child.hash in walk.visiting:
                raise DependencyCycleError([*(entry.ref for entry in path), child.hash])
            path.append(self._enter(child.hash, walk))
        return walk.loaded[ref]

    @staticmethod
    def _enter(ref: str, walk: _HookWalk) -> _HookFrame:
        directory = walk.directory(ref)
        package = find_package_in_dir(directory)
        walk.visiting.add(ref)
        return _HookFrame(ref, directory, package, iter(package.iter_dependencies()))

    def _maybe_run_post_install(
        self,
        ref: str,
        package: Package,
        directory: Path,
        walk: _HookWalk,
    ) -> None:
        own_dir = package_dir(directory)
        if hook_ran(own_dir, HOOK_POST_INSTALL):
            walk.skipped.append(ref)
            return

        progress = self.packages.progress
        progress.start(ref, label=package.name, phase="install")
        args = [str(directory)]
        if walk.global_install:
            args.append("--global")
        try:
            self.hooks.run_hook(
                HOOK_POST_INSTALL, package.language, package.subtool_required, *args
            )
        except HookError as exc:
            progress.fail(ref, detail=str(exc))
            logger.error("post_install_failed", ref=ref, package=package.name, error=str(exc))
            raise
        mark_hook_ran(own_dir, HOOK_POST_INSTALL)
        progress.inc(COUNTER_HOOKS_RUN)
        progress.finish(ref)
        walk.hooked.append(ref)

    def install_lock(self, lock: LockFile, cwd: Path) -> tuple[Path, ...]:
        """Install every pinned entry of ``lock``; returns the links created."""

        return asyncio.run(self._install_lock(lock, Path(cwd).resolve()))

    async def _install_lock(self, lock: LockFile, cwd: Path) -> tuple[Path, ...]:
        cache_root = cwd / LOCK_CACHE_DIR
        pending: deque[_LockWork] = deque(self._lock_work(lock.deps, cwd, cache_root))
        self.packages.progress.add_todo(len(pending))

        pool: WorkerPool[_LockWork, Path] = WorkerPool(self.max_parallel)
        failures = FailureLog()
        in_flight: set[str] = set()
        linked: list[Path] = []

        with self._scheduler.executor() as executor:
            try:
                while pool.active or (pending and not failures.failed):
                    # Entries sharing a ref wait for the in-flight fetch of that ref.
                    for _ in range(len(pending)):
                        if failures.failed or not pool.has_capacity:
                            break
                        work = pending.popleft()
                        if work.ref in in_flight:
                            pending.append(work)
                            continue
                        in_flight.add(work.ref)
                        self.packages.progress.start(work.ref, label=work.name, phase="fetch")
                        pool.submit(
                            work,
                            run_blocking(executor, self._cache_and_link, work, failures.cancel),
                        )

                    for completion in await pool.next_completed():
                        work = completion.key
                        in_flight.discard(work.ref)
                        if completion.error is not None:
                            self.packages.progress.fail(work.ref, detail=str(completion.error))
                            failures.record(work.ref, completion.error)
                            continue
                        self.packages.progress.finish(work.ref)
                        linked.append(work.link)
                        if work.nested and not failures.failed:
                            nested = list(self._lock_work(work.nested, cwd, cache_root))
                            self.packages.progress.add_todo(len(nested))
                            pending.extend(nested)
            except BaseException:
                failures.cancel.cancel()
                await pool.cancel_all()
                raise

        failures.raise_if_failed()
        logger.info("lock_install_finished", linked=len(linked), cwd=str(cwd))
        return tuple(linked)

    def _lock_work(
        self,
        tree: Mapping[str, Mapping[str, LockDep]],
        cwd: Path,
        cache_root: Path,
    ) -> Iterator[_LockWork]:
        for language in sorted(tree):
            link_dir = self._install_path(language, cwd)
            entries = tree[language]
            for name in sorted(entries):
                entry = entries[name]
                yield _LockWork(
                    language=language,
                    name=name,
                    ref=entry.ref,
                    link=link_dir / name,
                    cache=cache_root / entry.ref,
                    nested=entry.deps,
                )

    def _install_path(self, language: str, cwd: Path) -> Path:
        if self._install_roots is None:
            raise RuntimeError("lock install requires install roots")
        return self._install_roots.install_path(language, cwd, False)

    def _cache_and_link(self, work: _LockWork, cancel: CancellationToken) -> Path:
        self.packages.fetch_to(work.ref, work.cache, cancel)
        replace_symlink(work.link, package_dir(work.cache))
        logger.debug("lock_entry_linked", ref=work.ref, link=str(work.link))
        return work.link


__all__ = [
    "InstallPipeline",
    "InstallReport",
    "hook_ran",
    "mark_hook_ran",
]
