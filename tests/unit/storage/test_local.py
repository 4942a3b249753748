"""Unit tests for the on-disk Merkle object store."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest

from hashpkg.storage.base import InvalidHashError, Link, ObjectNotFoundError, StorageError
from hashpkg.storage.local import LocalContentStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def store(tmp_path: Path) -> LocalContentStore:
    return LocalContentStore(tmp_path / "objects")


def test_add_is_content_addressed(store: LocalContentStore) -> None:
    first = store.add(io.BytesIO(b"hello"))
    second = store.add(io.BytesIO(b"hello"))

    assert first == second
    assert len(first) == 64
    assert store.has(first)
    assert first != store.add(io.BytesIO(b"world"))


def test_blob_and_empty_tree_never_collide(store: LocalContentStore) -> None:
    empty_blob = store.add(io.BytesIO(b""))

    assert empty_blob != store.new_empty_dir()


def test_patch_link_returns_new_tree_and_keeps_the_old_one(store: LocalContentStore) -> None:
    blob = store.add(io.BytesIO(b"data"))
    empty = store.new_empty_dir()

    one = store.patch_link(empty, "a.txt", blob)
    replaced = store.patch_link(one, "a.txt", store.add(io.BytesIO(b"other")))

    assert store.list(empty) == []
    assert store.list(one) == [Link(name="a.txt", hash=blob)]
    assert store.list(replaced)[0].hash != blob


def test_link_order_does_not_affect_the_tree_id(store: LocalContentStore) -> None:
    a = store.add(io.BytesIO(b"a"))
    b = store.add(io.BytesIO(b"b"))
    empty = store.new_empty_dir()

    forward = store.patch_link(store.patch_link(empty, "a", a), "b", b)
    backward = store.patch_link(store.patch_link(empty, "b", b), "a", a)

    assert forward == backward


def test_list_walks_path_segments(store: LocalContentStore) -> None:
    blob = store.add(io.BytesIO(b"x"))
    inner = store.patch_link(store.new_empty_dir(), "file", blob)
    outer = store.patch_link(store.new_empty_dir(), "pkg", inner)

    assert store.list(f"{outer}/pkg") == [Link(name="file", hash=blob)]
    with pytest.raises(ObjectNotFoundError):
        store.list(f"{outer}/missing")


def test_get_materializes_trees(store: LocalContentStore, tmp_path: Path) -> None:
    blob = store.add(io.BytesIO(b"content"))
    inner = store.patch_link(store.new_empty_dir(), "f.txt", blob)
    root = store.patch_link(store.new_empty_dir(), "dir", inner)

    store.get(root, tmp_path / "out")

    assert (tmp_path / "out" / "dir" / "f.txt").read_bytes() == b"content"


def test_get_unknown_and_invalid_refs(store: LocalContentStore, tmp_path: Path) -> None:
    with pytest.raises(ObjectNotFoundError):
        store.get("0" * 64, tmp_path / "out")
    with pytest.raises(InvalidHashError):
        store.get("not-a-hash", tmp_path / "out")


def test_patch_link_validates_names_and_children(store: LocalContentStore) -> None:
    empty = store.new_empty_dir()

    with pytest.raises(StorageError, match="invalid link name"):
        store.patch_link(empty, "a/b", empty)
    with pytest.raises(ObjectNotFoundError):
        store.patch_link(empty, "child", "f" * 64)
