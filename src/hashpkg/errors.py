"""
hashpkg — error taxonomy

File: src/hashpkg/errors.py
Last updated: 2026-10-19

Purpose
- One exception hierarchy for resolver, store accessor, hook, and manifest failures.

Functional requirements
- Fetch failures carry the failing hash, the attempt count, and the first cause.
- Hook failures carry hook name, language tag, and exit status.
- Graph inconsistencies are not exceptions; see ``hashpkg.check.CheckReport``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class HashpkgError(RuntimeError):
    """Base error for hashpkg failures."""


class ManifestError(HashpkgError):
    """Raised when a manifest file cannot be read or does not validate."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        self.detail = message
        super().__init__(f"{self.path}: {message}")


class LockFileError(ManifestError):
    """Raised when a lock file is malformed or has an unsupported version."""


class PackageNotFoundError(HashpkgError):
    """Raised when a hash is not present in any searched install root."""

    def __init__(self, ref: str, searched: Sequence[Path] = ()) -> None:
        self.ref = ref
        self.searched = tuple(searched)
        message = f"package {ref} not found"
        if self.searched:
            message = f"{message} (searched: {', '.join(str(p) for p in self.searched)})"
        super().__init__(message)


class AmbiguousStoreStateError(HashpkgError):
    """Raised when a hash directory holds zero or several package candidates."""

    def __init__(self, hash_dir: Path, candidates: Sequence[str] = ()) -> None:
        self.hash_dir = hash_dir
        self.candidates = tuple(candidates)
        if self.candidates:
            message = f"found multiple packages in {hash_dir}: {', '.join(self.candidates)}"
        else:
            message = f"no package found in {hash_dir}"
        super().__init__(message)


class PackageFetchError(HashpkgError):
    """Raised when a package could not be materialized from content storage."""

    def __init__(
        self,
        ref: str,
        cause: BaseException,
        *,
        attempts: int = 1,
        secondary_errors: Sequence[BaseException] = (),
    ) -> None:
        self.ref = ref
        self.attempts = attempts
        self.first_error = cause
        self.secondary_errors = tuple(secondary_errors)
        super().__init__(f"failed to fetch package {ref} after {attempts} attempt(s): {cause}")

    def with_secondary(self, errors: Sequence[BaseException]) -> PackageFetchError:
        """Return a copy carrying errors that surfaced while draining other workers."""

        clone = PackageFetchError(
            self.ref,
            self.first_error,
            attempts=self.attempts,
            secondary_errors=errors,
        )
        clone.__cause__ = self.__cause__
        return clone


class FetchCancelledError(HashpkgError):
    """Raised when a fetch stops retrying because the operation was cancelled."""

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"fetch of {ref} cancelled")


class DependencyCycleError(HashpkgError):
    """Raised when a hook walk re-enters a package it is still processing."""

    def __init__(self, path: Sequence[str]) -> None:
        self.path = tuple(path)
        super().__init__(f"dependency cycle: {' -> '.join(self.path)}")


class HookError(HashpkgError):
    """Base error for subtool hook failures."""

    def __init__(self, hook: str, language: str, message: str) -> None:
        self.hook = hook
        self.language = language
        super().__init__(f"{hook} hook failed ({language or 'no language'}): {message}")


class HookFailedError(HookError):
    """Raised when a hook binary exits nonzero."""

    def __init__(self, hook: str, language: str, returncode: int, *, stderr: str = "") -> None:
        self.returncode = returncode
        self.stderr = stderr
        detail = f"exit status {returncode}"
        if stderr.strip():
            detail = f"{detail}: {stderr.strip()}"
        super().__init__(hook, language, detail)


class SubtoolMissingError(HookError):
    """Raised when a required hook has no subtool binary for its language."""

    def __init__(self, hook: str, language: str, binary: str) -> None:
        self.binary = binary
        if language:
            detail = f"required subtool {binary!r} not found"
        else:
            detail = "hook is required but the package declares no language"
        super().__init__(hook, language, detail)


class DependencyLookupError(HashpkgError):
    """Raised when a dependency reference matches no edge, or more than one."""


__all__ = [
    "AmbiguousStoreStateError",
    "DependencyCycleError",
    "DependencyLookupError",
    "FetchCancelledError",
    "HashpkgError",
    "HookError",
    "HookFailedError",
    "LockFileError",
    "ManifestError",
    "PackageFetchError",
    "PackageNotFoundError",
    "SubtoolMissingError",
]
