"""
hashpkg — filesystem utilities

File: src/hashpkg/utils/fs.py
Last updated: 2026-10-19

Purpose
- Atomic file writes, staging-directory cleanup, and symlink replacement for the store.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Directory removal never follows a symlink into its target.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "remove_tree",
    "replace_symlink",
    "temp_directory",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def remove_tree(path: PathLike) -> bool:
    """Remove a file, symlink, or directory tree. Returns ``False`` if nothing existed."""

    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink()
        return True
    if target.is_dir():
        shutil.rmtree(target)
        return True
    return False


def replace_symlink(link: PathLike, target: PathLike) -> None:
    """Point ``link`` at ``target``, replacing an existing link but never a real directory."""

    link_path = Path(link)
    link_path.parent.mkdir(parents=True, exist_ok=True)
    if link_path.is_symlink():
        if Path(os.readlink(link_path)) == Path(target):
            return
        link_path.unlink()
    elif link_path.exists():
        raise FileExistsError(f"refusing to replace non-symlink path: {link_path!s}")
    link_path.symlink_to(target, target_is_directory=True)


@contextmanager
def temp_directory(prefix: str = "hashpkg-") -> Iterator[Path]:
    """Yield a temporary directory path and clean it up on exit."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)
