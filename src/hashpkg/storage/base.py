"""Content-addressed storage interface consumed by the store accessor and publisher."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Protocol

if TYPE_CHECKING:
    from pathlib import Path


class StorageError(RuntimeError):
    """Storage-layer failure. The store accessor retries these."""


class ObjectNotFoundError(StorageError):
    """Raised when the store has no object for a hash."""

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"object {ref} not found")


class InvalidHashError(StorageError):
    """Raised for a malformed object id. Permanent: retrying cannot succeed."""

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"invalid object id {ref!r}")


@dataclass(frozen=True, slots=True)
class Link:
    """Named child entry of a directory object."""

    name: str
    hash: str


class ContentStore(Protocol):
    """Narrow view of a content-addressed object store."""

    def get(self, ref: str, dest: Path) -> None:
        """Materialize object ``ref`` at ``dest`` (which must not exist yet)."""

    def add(self, reader: BinaryIO) -> str:
        """Store the bytes of ``reader`` and return their object id."""

    def new_empty_dir(self) -> str:
        """Return the id of an empty directory object."""

    def patch_link(self, obj: str, name: str, child: str) -> str:
        """Return the id of ``obj`` with link ``name`` set to ``child``."""

    def list(self, path: str) -> list[Link]:
        """List the links of the directory object at ``path`` (``hash[/sub/path]``)."""


__all__ = [
    "ContentStore",
    "InvalidHashError",
    "Link",
    "ObjectNotFoundError",
    "StorageError",
]
