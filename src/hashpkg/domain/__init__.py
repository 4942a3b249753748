"""Manifest model and persistence exports."""

from hashpkg.domain.manifest import (
    find_package_root,
    load_lock_file,
    load_manifest_tree,
    load_package,
    save_lock_file,
    save_manifest_tree,
    save_package,
)
from hashpkg.domain.models import Dependency, LockDep, LockFile, Package, looks_like_hash

__all__ = [
    "Dependency",
    "LockDep",
    "LockFile",
    "Package",
    "find_package_root",
    "load_lock_file",
    "load_manifest_tree",
    "load_package",
    "looks_like_hash",
    "save_lock_file",
    "save_manifest_tree",
    "save_package",
]
