"""On-disk Merkle object store.

Blobs are raw file bytes; trees are canonical JSON link lists. Both are
addressed by ``object_digest(kind, payload)`` and written once, atomically.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from hashpkg.storage.base import InvalidHashError, Link, ObjectNotFoundError, StorageError
from hashpkg.utils.fs import atomic_write
from hashpkg.utils.hashing import is_sha256_hex, object_digest, object_digest_stream

if TYPE_CHECKING:
    from typing import BinaryIO

_BLOB = "blob"
_TREE = "tree"

logger = structlog.get_logger(__name__)


class LocalContentStore:
    """Content store rooted at a local directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._blobs = self.root / "blobs"
        self._trees = self.root / "trees"
        self._blobs.mkdir(parents=True, exist_ok=True)
        self._trees.mkdir(parents=True, exist_ok=True)

    def get(self, ref: str, dest: Path) -> None:
        _require_valid(ref)
        tree_path = self._trees / ref
        blob_path = self._blobs / ref
        try:
            if tree_path.is_file():
                dest.mkdir(parents=True, exist_ok=False)
                for link in self._read_tree(ref):
                    self.get(link.hash, dest / link.name)
                return
            if blob_path.is_file():
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(blob_path, dest)
                return
        except OSError as exc:
            raise StorageError(f"unable to materialize {ref} at {dest}: {exc}") from exc
        raise ObjectNotFoundError(ref)

    def add(self, reader: BinaryIO) -> str:
        ref, payload = object_digest_stream(_BLOB, reader)
        target = self._blobs / ref
        if not target.exists():
            atomic_write(target, payload)
        return ref

    def new_empty_dir(self) -> str:
        return self._put_tree([])

    def patch_link(self, obj: str, name: str, child: str) -> str:
        _require_valid(child)
        _require_link_name(name)
        if not (self._trees / child).is_file() and not (self._blobs / child).is_file():
            raise ObjectNotFoundError(child)
        links = [link for link in self._read_tree(obj) if link.name != name]
        links.append(Link(name=name, hash=child))
        return self._put_tree(links)

    def list(self, path: str) -> list[Link]:
        parts = [part for part in path.strip("/").split("/") if part]
        if not parts:
            raise InvalidHashError(path)
        ref = parts[0]
        for segment in parts[1:]:
            match = next((link for link in self._read_tree(ref) if link.name == segment), None)
            if match is None:
                raise ObjectNotFoundError(f"{ref}/{segment}")
            ref = match.hash
        return self._read_tree(ref)

    def has(self, ref: str) -> bool:
        return (self._trees / ref).is_file() or (self._blobs / ref).is_file()

    def _put_tree(self, links: list[Link]) -> str:
        ordered = sorted(links, key=lambda link: link.name)
        payload = json.dumps(
            {"links": [{"hash": link.hash, "name": link.name} for link in ordered]},
            sort_keys=True,
            separators=(",", ":"),
        ).encode("utf-8")
        ref = object_digest(_TREE, payload)
        target = self._trees / ref
        if not target.exists():
            atomic_write(target, payload)
            logger.debug("local_store_tree_written", ref=ref, links=len(ordered))
        return ref

    def _read_tree(self, ref: str) -> list[Link]:
        _require_valid(ref)
        tree_path = self._trees / ref
        try:
            raw = json.loads(tree_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(ref) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"corrupt tree object {ref}: {exc}") from exc
        return [Link(name=item["name"], hash=item["hash"]) for item in raw.get("links", [])]


def _require_valid(ref: str) -> None:
    if not is_sha256_hex(ref):
        raise InvalidHashError(ref)


def _require_link_name(name: str) -> None:
    if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
        raise StorageError(f"invalid link name {name!r}")


__all__ = ["LocalContentStore"]
