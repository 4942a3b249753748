"""
hashpkg — unit tests for the CLI router

File: tests/unit/cli/test_cli.py
Last updated: 2026-10-19

Purpose
- Drive each command through ``run_cli`` against a local content store.

What this test file should cover
- init/import/install/deps/check/get/update/publish against a throwaway registry.
- view/set query round trips on package.json.
- Exit codes: 0 success, 1 command failure, 2 usage or config errors, 3 failed check.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from hashpkg.constants import LAST_PUBLISHED_FILE, MANIFEST_FILENAME
from hashpkg.domain.manifest import load_package, save_package
from hashpkg.domain.models import Dependency, Package
from hashpkg.main import cli_entrypoint
from hashpkg.store.accessor import hash_dir
from hashpkg.ui.cli import EXIT_CHECK_FAILED, EXIT_FAILURE, EXIT_OK, EXIT_USAGE, run_cli

if TYPE_CHECKING:
    from pathlib import Path

    from tests.support import Registry


@pytest.fixture()
def project(tmp_path: Path, registry: Registry, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "project"
    workdir.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("HASHPKG_STORE_BACKEND", "local")
    monkeypatch.setenv("HASHPKG_STORE_LOCAL_ROOT", str(registry.store.root))
    monkeypatch.setenv("HASHPKG_INSTALL_GLOBAL_ROOT", str(tmp_path / "global"))
    monkeypatch.delenv("HASHPKG_STORE_API_URL", raising=False)
    monkeypatch.chdir(workdir)
    return workdir


def _manifest(project: Path) -> dict[str, object]:
    data = json.loads((project / MANIFEST_FILENAME).read_text(encoding="utf-8"))
    assert isinstance(data, dict)
    return data


def test_init_writes_manifest_once(
    project: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("HASHPKG_USER_NAME", "dana")

    assert run_cli(["init", "mylib"]) == EXIT_OK
    assert _manifest(project) == {"name": "mylib", "author": "dana", "version": "0.0.0"}

    assert run_cli(["init"]) == EXIT_FAILURE
    assert "already exists" in capsys.readouterr().err


def test_import_installs_and_records_dependency(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    ref = registry.publish("lib", "1.2.0")
    run_cli(["init", "app"])

    assert run_cli(["import", ref]) == EXIT_OK

    assert capsys.readouterr().out.strip() == f"imported lib 1.2.0 {ref}"
    (dependency,) = load_package(project).dependencies
    assert (dependency.name, dependency.hash, dependency.version) == ("lib", ref, "1.2.0")
    assert (hash_dir(project / "vendor", ref) / "lib" / MANIFEST_FILENAME).is_file()

    assert run_cli(["import", ref]) == EXIT_FAILURE
    assert "already imported as lib" in capsys.readouterr().err


def test_install_then_check_reports_version_split(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    registry.publish("lib", "1.0.0")
    registry.publish("util", "0.1.0", deps=["lib"])
    lib_new = registry.publish("lib", "2.0.0", files={"NEWS": "2.0"})
    save_package(
        project / MANIFEST_FILENAME,
        Package(
            name="app",
            dependencies=(
                registry.dep("lib", version="2.0.0"),
                registry.dep("util", version="0.1.0"),
            ),
        ),
    )

    assert run_cli(["install"]) == EXIT_OK
    assert run_cli(["check"]) == EXIT_CHECK_FAILED

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "package lib imported as:"
    assert out[-2:] == [f"  - 2.0.0 {lib_new}", "    - app"]


def test_check_passes_on_consistent_tree(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    registry.publish("lib")
    save_package(
        project / MANIFEST_FILENAME, Package(name="app", dependencies=(registry.dep("lib"),))
    )

    assert run_cli(["install"]) == EXIT_OK
    assert run_cli(["check"]) == EXIT_OK
    assert capsys.readouterr().out == ""


def test_deps_lists_direct_and_recursive(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    lib = registry.publish("lib")
    util = registry.publish("util", "0.3.0", deps=["lib"])
    save_package(
        project / MANIFEST_FILENAME,
        Package(name="app", dependencies=(registry.dep("util", version="0.3.0"),)),
    )
    run_cli(["install"])
    capsys.readouterr()

    assert run_cli(["deps"]) == EXIT_OK
    assert capsys.readouterr().out.splitlines() == [f"util\t{util}\t0.3.0"]

    assert run_cli(["deps", "-r", "-q"]) == EXIT_OK
    assert capsys.readouterr().out.splitlines() == [lib, util]

    assert run_cli(["deps", "--tree"]) == EXIT_OK
    assert capsys.readouterr().out.splitlines() == [
        f"util {util} 0.3.0",
        f"  lib {lib} 1.0.0",
    ]


def test_get_downloads_into_output_directory(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    ref = registry.publish("lib")

    assert run_cli(["get", ref, "-o", "out"]) == EXIT_OK

    assert (project / "out" / "lib" / MANIFEST_FILENAME).is_file()
    assert capsys.readouterr().out.startswith("lib ")

def test_update_points_dependency_at_new_hash(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    old = registry.publish("lib", "1.0.0")
    new = registry.publish("lib", "1.1.0", files={"NEWS": "1.1"})
    save_package(
        project / MANIFEST_FILENAME,
        Package(name="app", dependencies=(Dependency("lib", old, "1.0.0"),)),
    )

    assert run_cli(["update", "lib", new]) == EXIT_OK

    assert capsys.readouterr().out.strip() == f"{old} -> {new}"
    (dependency,) = load_package(project).dependencies
    assert (dependency.hash, dependency.version) == (new, "1.1.0")
    assert hash_dir(project / "vendor", new).is_dir()


def test_publish_records_last_published_hash(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    run_cli(["init", "app"])
    (project / "main.txt").write_text("hello", encoding="utf-8")

    assert run_cli(["publish"]) == EXIT_OK

    line = capsys.readouterr().out.strip()
    assert line.startswith("package app published with hash: ")
    ref = line.rsplit(" ", 1)[-1]
    last = (project / LAST_PUBLISHED_FILE).read_text(encoding="utf-8")
    assert last == f"0.0.0: {ref}\n"
    (wrapper,) = registry.store.list(ref)
    assert wrapper.name == "app"
    published = sorted(link.name for link in registry.store.list(f"{ref}/app"))
    assert published == ["main.txt", MANIFEST_FILENAME]


def test_view_and_set_round_trip(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    save_package(
        project / MANIFEST_FILENAME,
        Package(name="app", version="0.1.0", dependencies=(Dependency("lib", "H1", "1.0.0"),)),
    )

    assert run_cli(["set", ".version", "1.2.3"]) == EXIT_OK
    assert run_cli(["set", ".subtoolRequired", "true"]) == EXIT_OK
    assert run_cli(["set", ".dependencies[name=lib].version", "1.0.1"]) == EXIT_OK
    capsys.readouterr()

    assert run_cli(["view", ".version"]) == EXIT_OK
    assert run_cli(["view", ".subtoolRequired"]) == EXIT_OK
    assert run_cli(["view", ".dependencies[0]"]) == EXIT_OK

    out = capsys.readouterr().out
    assert out.startswith("1.2.3\ntrue\n")
    assert json.loads(out.split("\n", 2)[2]) == {
        "hash": "H1",
        "name": "lib",
        "version": "1.0.1",
    }
    package = load_package(project)
    assert package.subtool_required is True


def test_set_refuses_to_write_an_invalid_manifest(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    save_package(project / MANIFEST_FILENAME, Package(name="app"))
    before = (project / MANIFEST_FILENAME).read_text(encoding="utf-8")

    assert run_cli(["set", ".name", "42"]) == EXIT_FAILURE
    assert run_cli(["view", ".missing"]) == EXIT_FAILURE

    assert (project / MANIFEST_FILENAME).read_text(encoding="utf-8") == before
    assert "key not found: missing" in capsys.readouterr().err


def test_commands_without_manifest_fail(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["check"]) == EXIT_FAILURE
    assert "hashpkg init" in capsys.readouterr().err


def test_missing_config_file_is_a_usage_error(project: Path) -> None:
    save_package(project / MANIFEST_FILENAME, Package(name="app"))

    assert run_cli(["check", "--config", "missing.toml"]) == EXIT_USAGE


def test_entrypoint_normalizes_argparse_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == EXIT_USAGE
    assert cli_entrypoint(["--help"]) == EXIT_OK
    assert "usage: hashpkg" in capsys.readouterr().out


def test_clean_removes_packages_outside_the_closure(
    project: Path, registry: Registry, capsys: pytest.CaptureFixture[str]
) -> None:
    lib = registry.publish("lib")
    stale = registry.publish("stale")
    run_cli(["init", "app"])
    assert run_cli(["import", lib]) == EXIT_OK
    assert run_cli(["import", stale]) == EXIT_OK
    root = load_package(project)
    save_package(
        project / MANIFEST_FILENAME,
        root.with_dependencies(dep for dep in root.dependencies if dep.hash == lib),
    )
    capsys.readouterr()

    assert run_cli(["clean", "--dry-run"]) == EXIT_OK
    assert capsys.readouterr().out.splitlines() == [stale]
    assert hash_dir(project / "vendor", stale).is_dir()

    assert run_cli(["clean"]) == EXIT_OK
    assert capsys.readouterr().out.splitlines() == [stale]
    assert not hash_dir(project / "vendor", stale).exists()
    assert hash_dir(project / "vendor", lib).is_dir()


def test_version_prints_sets_and_bumps(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    run_cli(["init", "app"])

    assert run_cli(["version"]) == EXIT_OK
    assert capsys.readouterr().out == "0.0.0\n"

    assert run_cli(["version", "minor"]) == EXIT_OK
    assert load_package(project).version == "0.1.0"
    assert run_cli(["version", "patch"]) == EXIT_OK
    assert load_package(project).version == "0.1.1"
    assert run_cli(["version", "major"]) == EXIT_OK
    assert load_package(project).version == "1.0.0"
    assert run_cli(["version", "2.0.0-rc.1"]) == EXIT_OK
    assert load_package(project).version == "2.0.0-rc.1"

    assert run_cli(["version", "sideways"]) == EXIT_FAILURE
    assert "not a semver field" in capsys.readouterr().err
    assert load_package(project).version == "2.0.0-rc.1"
