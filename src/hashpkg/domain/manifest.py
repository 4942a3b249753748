"""Manifest and lock-file persistence.

Saving merges into whatever JSON object is already on disk so that keys this
package does not model survive a load/save cycle untouched.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

from hashpkg.constants import LOCK_FILENAME, MANIFEST_FILENAME
from hashpkg.domain.models import JSONValue, LockFile, Package
from hashpkg.errors import LockFileError, ManifestError
from hashpkg.utils.fs import atomic_write


def load_package(path: Path | str) -> Package:
    """Load ``path`` (a manifest file or a directory containing one)."""

    manifest_path = _manifest_path(Path(path))
    try:
        return Package.from_dict(_read_json(manifest_path), str(manifest_path))
    except ValueError as exc:
        raise ManifestError(manifest_path, str(exc)) from exc


def save_package(path: Path | str, package: Package) -> Path:
    """Write ``package`` to ``path``, preserving unmodelled keys already on disk."""

    manifest_path = _manifest_path(Path(path))
    existing: dict[str, Any] = {}
    if manifest_path.exists():
        raw = _read_json(manifest_path)
        if isinstance(raw, dict):
            existing = raw

    merged = dict(existing)
    rendered = package.to_dict()
    for key in ("language", "subtoolRequired", "dependencies"):
        if key not in rendered:
            merged.pop(key, None)
    merged.update(rendered)

    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(manifest_path, json.dumps(merged, indent=2, ensure_ascii=False) + "\n")
    return manifest_path


def load_manifest_tree(path: Path | str) -> JSONValue:
    """Raw JSON of a manifest, for path queries that reach past the modelled fields."""

    return cast("JSONValue", _read_json(_manifest_path(Path(path))))


def save_manifest_tree(path: Path | str, tree: JSONValue) -> Path:
    """Validate ``tree`` as a manifest and write it verbatim."""

    manifest_path = _manifest_path(Path(path))
    try:
        Package.from_dict(tree, str(manifest_path))
    except ValueError as exc:
        raise ManifestError(manifest_path, str(exc)) from exc
    atomic_write(manifest_path, json.dumps(tree, indent=2, ensure_ascii=False) + "\n")
    return manifest_path


def find_package_root(start: Path | str) -> Path:
    """Walk up from ``start`` to the nearest directory holding a manifest."""

    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / MANIFEST_FILENAME).is_file():
            return candidate
    raise ManifestError(current, f"no {MANIFEST_FILENAME} found in this directory or above")


def load_lock_file(path: Path | str) -> LockFile:
    lock_path = Path(path)
    if lock_path.is_dir():
        lock_path = lock_path / LOCK_FILENAME
    try:
        return LockFile.from_dict(_read_json(lock_path, error_type=LockFileError), str(lock_path))
    except ValueError as exc:
        raise LockFileError(lock_path, str(exc)) from exc


def save_lock_file(path: Path | str, lock: LockFile) -> Path:
    lock_path = Path(path)
    if lock_path.is_dir():
        lock_path = lock_path / LOCK_FILENAME
    atomic_write(lock_path, json.dumps(lock.to_dict(), indent=2, ensure_ascii=False) + "\n")
    return lock_path


def _manifest_path(path: Path) -> Path:
    if path.name == MANIFEST_FILENAME:
        return path
    if path.is_dir() or not path.suffix:
        return path / MANIFEST_FILENAME
    return path


def _read_json(
    path: Path,
    *,
    error_type: type[ManifestError] = ManifestError,
) -> object:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise error_type(path, "file not found") from exc
    except OSError as exc:
        raise error_type(path, f"unable to read: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise error_type(path, f"invalid JSON: {exc}") from exc


__all__ = [
    "find_package_root",
    "load_lock_file",
    "load_manifest_tree",
    "load_package",
    "save_lock_file",
    "save_manifest_tree",
    "save_package",
]
