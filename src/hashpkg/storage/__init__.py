"""Content-addressed storage adapters and the backend factory."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from hashpkg.storage.base import (
    ContentStore,
    InvalidHashError,
    Link,
    ObjectNotFoundError,
    StorageError,
)
from hashpkg.storage.ipfs import IpfsHttpStore
from hashpkg.storage.local import LocalContentStore


def open_content_store(config: Mapping[str, object]) -> ContentStore:
    """Build the backend selected by the ``[store]`` section of an effective config."""

    section = config.get("store")
    if not isinstance(section, Mapping):
        raise ValueError("config has no [store] section")
    backend = section.get("backend")
    if backend == "local":
        return LocalContentStore(Path(str(section["local_root"])).expanduser())
    if backend == "ipfs":
        return IpfsHttpStore(
            str(section["api_url"]),
            timeout_seconds=float(section["timeout_seconds"]),  # type: ignore[arg-type]
        )
    raise ValueError(f"unsupported store backend {backend!r}")


__all__ = [
    "ContentStore",
    "InvalidHashError",
    "IpfsHttpStore",
    "Link",
    "LocalContentStore",
    "ObjectNotFoundError",
    "StorageError",
    "open_content_store",
]
