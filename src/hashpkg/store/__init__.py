"""On-disk package store: layout, lookup, and atomic fetch."""

from hashpkg.store.accessor import (
    InstallRoots,
    PackageStore,
    find_package_in_dir,
    hash_dir,
    package_dir,
    package_name_in_dir,
)

__all__ = [
    "InstallRoots",
    "PackageStore",
    "find_package_in_dir",
    "hash_dir",
    "package_dir",
    "package_name_in_dir",
]
