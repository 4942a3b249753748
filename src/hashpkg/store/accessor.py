"""
hashpkg — package store accessor

File: src/hashpkg/store/accessor.py
Last updated: 2026-10-19

Purpose
- Resolve a dependency hash to a loaded manifest from the local or global install root.
- Materialize missing packages from content storage atomically, with bounded retry.

Functional requirements
- A hash directory is a package only if it holds exactly one manifest, either directly
  or under a single child directory named after the package.
- ``fetch_to`` is idempotent: an existing valid package is returned without fetching.
- Fetches land in ``<dest>.part`` and become visible through one ``os.rename``.
- Every storage error is retried except ``InvalidHashError``, which is permanent.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from hashpkg.constants import (
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    MANIFEST_FILENAME,
    STAGING_SUFFIX,
    STORE_NAMESPACE,
)
from hashpkg.domain.manifest import load_package
from hashpkg.errors import (
    AmbiguousStoreStateError,
    FetchCancelledError,
    PackageFetchError,
    PackageNotFoundError,
)
from hashpkg.observability.progress import (
    COUNTER_ALREADY_PRESENT,
    COUNTER_FETCHED,
    COUNTER_RETRIES,
    ProgressMeter,
)
from hashpkg.storage.base import InvalidHashError, StorageError
from hashpkg.utils.fs import remove_tree

if TYPE_CHECKING:
    from collections.abc import Callable

    from hashpkg.domain.models import Package
    from hashpkg.storage.base import ContentStore
    from hashpkg.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)


class InstallRoots(Protocol):
    """Maps a language tag to its local and global install roots."""

    def install_path(self, language: str, cwd: Path, global_install: bool = False) -> Path: ...


def hash_dir(root: Path, ref: str) -> Path:
    """Directory that holds package ``ref`` under install root ``root``."""

    return Path(root) / STORE_NAMESPACE / ref


def package_name_in_dir(directory: Path) -> str:
    """Return the local name of the package stored in ``directory``.

    An empty string means the manifest sits directly in ``directory``.
    """

    if not directory.exists():
        raise PackageNotFoundError(directory.name, (directory,))
    if not directory.is_dir():
        raise AmbiguousStoreStateError(directory)
    if (directory / MANIFEST_FILENAME).is_file():
        return ""

    entries = sorted(entry.name for entry in directory.iterdir())
    if len(entries) != 1:
        raise AmbiguousStoreStateError(directory, entries)
    name = entries[0]
    if not (directory / name / MANIFEST_FILENAME).is_file():
        raise AmbiguousStoreStateError(directory)
    return name


def package_dir(directory: Path) -> Path:
    """The directory holding the manifest (and hook markers) inside a hash directory."""

    name = package_name_in_dir(directory)
    return directory / name if name else directory


def find_package_in_dir(directory: Path) -> Package:
    return load_package(package_dir(directory) / MANIFEST_FILENAME)


class PackageStore:
    """Install-root lookups plus the atomic fetch path shared by every command."""

    def __init__(
        self,
        store: ContentStore,
        *,
        install_roots: InstallRoots | None = None,
        cwd: Path | None = None,
        progress: ProgressMeter | None = None,
        fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if fetch_attempts < 1:
            raise ValueError("fetch_attempts must be >= 1")
        if retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0")
        self.store = store
        self.progress = progress if progress is not None else ProgressMeter()
        self._install_roots = install_roots
        self._cwd = (cwd or Path.cwd()).resolve()
        self._fetch_attempts = fetch_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep

    @property
    def cwd(self) -> Path:
        return self._cwd

    @property
    def has_install_roots(self) -> bool:
        return self._install_roots is not None

    hash_dir = staticmethod(hash_dir)
    package_name_in_dir = staticmethod(package_name_in_dir)
    package_dir = staticmethod(package_dir)
    find_package_in_dir = staticmethod(find_package_in_dir)

    def search_roots(self, language: str = "") -> tuple[Path, Path]:
        """Local then global install root for ``language``."""

        if self._install_roots is None:
            raise RuntimeError("package store has no install roots configured")
        return (
            self._install_roots.install_path(language, self._cwd, False),
            self._install_roots.install_path(language, self._cwd, True),
        )

    def locate(self, ref: str, language: str = "") -> Path | None:
        """Hash directory of ``ref`` in the first install root holding it, if any."""

        if self._install_roots is None:
            return None
        for root in self.search_roots(language):
            directory = hash_dir(root, ref)
            if directory.exists():
                return directory
        return None

    def resolve(self, ref: str, language: str = "") -> Package:
        """Load ``ref`` from the local install root, falling back to the global one."""

        directory = self.locate(ref, language)
        if directory is None:
            searched = [hash_dir(root, ref) for root in self.search_roots(language)]
            raise PackageNotFoundError(ref, searched)
        return find_package_in_dir(directory)

    def fetch_to(
        self,
        ref: str,
        dest: Path,
        cancel: CancellationToken | None = None,
    ) -> Package:
        """Materialize ``ref`` at ``dest`` unless a valid package is already there."""

        dest = Path(dest)
        if dest.exists():
            package = find_package_in_dir(dest)
            self.progress.inc(COUNTER_ALREADY_PRESENT)
            logger.debug("fetch_skipped_present", ref=ref, dest=str(dest))
            return package

        staging = dest.with_name(dest.name + STAGING_SUFFIX)
        if remove_tree(staging):
            logger.info("fetch_stale_staging_removed", ref=ref, staging=str(staging))
        dest.parent.mkdir(parents=True, exist_ok=True)

        started = time.monotonic()
        logger.debug("fetch_started", ref=ref, dest=str(dest))
        try:
            self._get_with_retry(ref, staging, cancel)
            # Validate before publishing so a bad object never appears at dest.
            package_name_in_dir(staging)
            os.rename(staging, dest)
        except BaseException:
            remove_tree(staging)
            raise

        package = find_package_in_dir(dest)
        self.progress.inc(COUNTER_FETCHED)
        logger.info(
            "fetch_finished",
            ref=ref,
            package=package.name,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return package

    def _get_with_retry(
        self,
        ref: str,
        staging: Path,
        cancel: CancellationToken | None,
    ) -> None:
        for attempt in range(1, self._fetch_attempts + 1):
            if cancel is not None and cancel.is_cancelled:
                raise FetchCancelledError(ref)
            try:
                self.store.get(ref, staging)
                return
            except InvalidHashError as exc:
                raise PackageFetchError(ref, exc, attempts=attempt) from exc
            except StorageError as exc:
                remove_tree(staging)
                if attempt == self._fetch_attempts:
                    logger.error("fetch_failed", ref=ref, attempts=attempt, error=str(exc))
                    raise PackageFetchError(ref, exc, attempts=attempt) from exc
                delay = self._retry_backoff_seconds * attempt
                self.progress.inc(COUNTER_RETRIES)
                logger.warning(
                    "fetch_retry",
                    ref=ref,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(exc),
                )
                self._sleep(delay)


__all__ = [
    "InstallRoots",
    "PackageStore",
    "find_package_in_dir",
    "hash_dir",
    "package_dir",
    "package_name_in_dir",
]
