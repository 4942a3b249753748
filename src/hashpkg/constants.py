"""Stable constants shared across the resolver, store, and hook layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Manifest and lock file names.
MANIFEST_FILENAME: Final[str] = "package.json"
LOCK_FILENAME: Final[str] = "hashpkg-lock.json"
LOCK_FILE_VERSION: Final[int] = 1
IGNORE_FILENAME: Final[str] = ".hashpkgignore"
LAST_PUBLISHED_FILE: Final[PurePosixPath] = PurePosixPath(".hashpkg/lastpubver")
INITIAL_VERSION: Final[str] = "0.0.0"

# On-disk store layout: <install-root>/<STORE_NAMESPACE>/<hash>[/<name>]/<MANIFEST_FILENAME>.
STORE_NAMESPACE: Final[PurePosixPath] = PurePosixPath("hashpkg/objects")
STAGING_SUFFIX: Final[str] = ".part"
HOOK_MARKER_DIR: Final[str] = ".meta"
LOCK_CACHE_DIR: Final[PurePosixPath] = PurePosixPath(".hashpkg/cache")
DEFAULT_LOCAL_INSTALL_DIR: Final[str] = "vendor"

# Subtool binaries are named <prefix><language>.
SUBTOOL_PREFIX: Final[str] = "hashpkg-"

# Hook names.
HOOK_POST_INSTALL: Final[str] = "post-install"
HOOK_POST_IMPORT: Final[str] = "post-import"
HOOK_POST_UPDATE: Final[str] = "post-update"
HOOK_PRE_PUBLISH: Final[str] = "pre-publish"
HOOK_POST_PUBLISH: Final[str] = "post-publish"
HOOK_POST_INIT: Final[str] = "post-init"
HOOK_INSTALL_PATH: Final[str] = "install-path"

# Fetch engine defaults.
DEFAULT_MAX_PARALLEL: Final[int] = 20
DEFAULT_FETCH_ATTEMPTS: Final[int] = 4
DEFAULT_RETRY_BACKOFF_SECONDS: Final[float] = 1.0

# Paths never included when publishing a package directory.
PUBLISH_ALWAYS_IGNORED: Final[tuple[str, ...]] = (
    ".git",
    HOOK_MARKER_DIR,
    DEFAULT_LOCAL_INSTALL_DIR,
    ".hashpkg",
)

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_FETCH_ATTEMPTS",
    "DEFAULT_LOCAL_INSTALL_DIR",
    "DEFAULT_MAX_PARALLEL",
    "DEFAULT_RETRY_BACKOFF_SECONDS",
    "HOOK_INSTALL_PATH",
    "HOOK_MARKER_DIR",
    "HOOK_POST_IMPORT",
    "HOOK_POST_INIT",
    "HOOK_POST_INSTALL",
    "HOOK_POST_PUBLISH",
    "HOOK_POST_UPDATE",
    "HOOK_PRE_PUBLISH",
    "IGNORE_FILENAME",
    "INITIAL_VERSION",
    "LAST_PUBLISHED_FILE",
    "LOCK_CACHE_DIR",
    "LOCK_FILENAME",
    "LOCK_FILE_VERSION",
    "MANIFEST_FILENAME",
    "PUBLISH_ALWAYS_IGNORED",
    "STAGING_SUFFIX",
    "STORE_NAMESPACE",
    "SUBTOOL_PREFIX",
]
