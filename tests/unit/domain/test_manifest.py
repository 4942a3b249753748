"""
hashpkg — unit tests for the manifest model and persistence

File: tests/unit/domain/test_manifest.py
Last updated: 2026-10-19

Purpose
- Validate strict manifest parsing, passthrough of unknown keys, and lock-file handling.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

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
from hashpkg.errors import LockFileError, ManifestError

if TYPE_CHECKING:
    from pathlib import Path

_REF = "a" * 64


def _write(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_load_package_parses_dependencies_and_keeps_unknown_keys(tmp_path: Path) -> None:
    _write(
        tmp_path / "package.json",
        {
            "name": "app",
            "version": "1.2.0",
            "language": "go",
            "license": "MIT",
            "dependencies": [{"name": "lib", "hash": _REF, "version": "0.1.0"}],
        },
    )

    package = load_package(tmp_path)

    assert package.name == "app"
    assert package.language == "go"
    assert package.dependencies == (Dependency(name="lib", hash=_REF, version="0.1.0"),)
    assert package.extra == {"license": "MIT"}


def test_save_package_preserves_keys_it_does_not_model(tmp_path: Path) -> None:
    manifest = tmp_path / "package.json"
    _write(manifest, {"name": "app", "version": "1.0.0", "gx": {"dvcsimport": "x"}})

    package = load_package(manifest)
    save_package(manifest, package.with_version("1.1.0"))

    raw = json.loads(manifest.read_text(encoding="utf-8"))
    assert raw["version"] == "1.1.0"
    assert raw["gx"] == {"dvcsimport": "x"}
    assert manifest.read_text(encoding="utf-8").endswith("}\n")


def test_save_package_drops_dependencies_key_when_emptied(tmp_path: Path) -> None:
    manifest = tmp_path / "package.json"
    _write(
        manifest,
        {"name": "app", "version": "1", "dependencies": [{"name": "lib", "hash": _REF}]},
    )

    save_package(manifest, load_package(manifest).with_dependencies([]))

    assert "dependencies" not in json.loads(manifest.read_text(encoding="utf-8"))


@pytest.mark.parametrize(
    "payload",
    [
        {"version": "1.0.0"},
        {"name": "app", "dependencies": {"lib": _REF}},
        {"name": "app", "dependencies": [{"name": "lib"}]},
        {"name": "app", "dependencies": [{"name": "lib", "hash": "  "}]},
        {"name": "app", "subtoolRequired": "yes"},
    ],
)
def test_load_package_rejects_malformed_manifests(tmp_path: Path, payload: object) -> None:
    _write(tmp_path / "package.json", payload)

    with pytest.raises(ManifestError) as excinfo:
        load_package(tmp_path)

    assert excinfo.value.path == tmp_path / "package.json"


def test_load_package_reports_invalid_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ManifestError, match="invalid JSON"):
        load_package(tmp_path)


def test_find_package_root_walks_up(tmp_path: Path) -> None:
    _write(tmp_path / "package.json", {"name": "app"})
    nested = tmp_path / "src" / "deep"
    nested.mkdir(parents=True)

    assert find_package_root(nested) == tmp_path.resolve()


def test_find_package_root_without_manifest_raises(tmp_path: Path) -> None:
    with pytest.raises(ManifestError):
        find_package_root(tmp_path)


def test_lock_file_round_trip_keeps_nested_pins(tmp_path: Path) -> None:
    lock = LockFile(
        language="go",
        deps={"go": {"lib": LockDep(ref=_REF, deps={"js": {"util": LockDep(ref="b" * 64)}})}},
    )

    path = save_lock_file(tmp_path / "hashpkg-lock.json", lock)
    loaded = load_lock_file(path)

    assert loaded.deps["go"]["lib"].ref == _REF
    assert loaded.deps["go"]["lib"].deps["js"]["util"].ref == "b" * 64


def test_lock_file_with_unsupported_version_is_rejected(tmp_path: Path) -> None:
    _write(tmp_path / "hashpkg-lock.json", {"lockVersion": 9, "deps": {}})

    with pytest.raises(LockFileError, match="unsupported lock version"):
        load_lock_file(tmp_path)


def test_manifest_tree_save_validates(tmp_path: Path) -> None:
    manifest = tmp_path / "package.json"
    _write(manifest, {"name": "app", "version": "1"})
    tree = load_manifest_tree(manifest)
    assert isinstance(tree, dict)

    with pytest.raises(ManifestError):
        save_manifest_tree(manifest, {**tree, "name": 5})

    save_manifest_tree(manifest, {**tree, "description": "demo"})
    assert load_package(manifest).extra == {"description": "demo"}


def test_looks_like_hash_accepts_sha256_and_cidv0() -> None:
    assert looks_like_hash(_REF)
    assert looks_like_hash("QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG")
    assert not looks_like_hash("lib")
    assert not looks_like_hash("A" * 64)


def test_package_to_dict_orders_modelled_fields() -> None:
    package = Package(
        name="app",
        version="1",
        language="go",
        subtool_required=True,
        dependencies=(Dependency(name="lib", hash=_REF, version="2"),),
    )

    payload = package.to_dict()

    assert payload["subtoolRequired"] is True
    assert payload["dependencies"] == [{"hash": _REF, "name": "lib", "version": "2"}]


def test_dependency_keeps_unknown_keys_and_allows_missing_name(tmp_path: Path) -> None:
    manifest = tmp_path / "package.json"
    _write(
        manifest,
        {
            "name": "app",
            "dependencies": [
                {"name": "b", "hash": _REF, "version": "1.0.0", "path": "x/y"},
                {"hash": "b" * 64},
            ],
        },
    )

    package = load_package(manifest)
    first, nameless = package.dependencies
    assert first.extra == {"path": "x/y"}
    assert (nameless.name, nameless.hash, nameless.version) == ("", "b" * 64, "")

    save_package(manifest, package.with_version("1.0.1"))

    raw = json.loads(manifest.read_text(encoding="utf-8"))
    assert raw["dependencies"] == [
        {"path": "x/y", "hash": _REF, "name": "b", "version": "1.0.0"},
        {"hash": "b" * 64},
    ]


def test_strings_are_kept_verbatim(tmp_path: Path) -> None:
    _write(
        tmp_path / "package.json",
        {"name": " app ", "version": "1.0.0 ", "dependencies": [{"name": "lib ", "hash": _REF}]},
    )

    package = load_package(tmp_path)

    assert package.name == " app "
    assert package.version == "1.0.0 "
    assert package.dependencies[0].name == "lib "
    assert package.to_dict()["name"] == " app "
