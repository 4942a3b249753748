"""Remove installed packages that the root package no longer reaches."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from hashpkg.constants import STORE_NAMESPACE
from hashpkg.deps import enumerate_dependencies
from hashpkg.utils.fs import remove_tree

if TYPE_CHECKING:
    from hashpkg.check import PackageSource
    from hashpkg.domain.models import Package

logger = structlog.get_logger(__name__)


def unused_entries(root: Package, source: PackageSource, install_root: Path) -> list[Path]:
    """Entries of ``install_root``'s object directory outside ``root``'s closure, sorted."""

    objects = Path(install_root) / STORE_NAMESPACE
    if not objects.is_dir():
        return []
    keep = enumerate_dependencies(root, source)
    return sorted(entry for entry in objects.iterdir() if entry.name not in keep)


def clean_install_root(
    root: Package,
    source: PackageSource,
    install_root: Path,
    *,
    dry_run: bool = False,
) -> list[Path]:
    """Delete unused entries unless ``dry_run``; returns what was (or would be) removed."""

    unused = unused_entries(root, source, install_root)
    if dry_run:
        logger.info("clean_dry_run", root_package=root.name, unused=len(unused))
        return unused
    for entry in unused:
        remove_tree(entry)
        logger.debug("clean_removed", path=str(entry))
    logger.info("clean_finished", root_package=root.name, removed=len(unused))
    return unused


__all__ = ["clean_install_root", "unused_entries"]
