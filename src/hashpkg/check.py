"""
hashpkg — dependency graph consistency checker

File: src/hashpkg/check.py
Last updated: 2026-10-19

Purpose
- Report version splits (one package name reached through several hashes) and
  dependency edges whose cached name/version disagree with the package they reference.

Functional requirements
- One pass over the graph; each hash is traversed once, later sightings only add an importer.
- Never fails fast and never mutates manifests; the result is a complete diagnostic batch.
- Output ordering is deterministic: names sorted, hashes by version then hash, importers sorted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Protocol

import structlog

from hashpkg.domain.versions import parse_version, version_sort_key

if TYPE_CHECKING:
    from hashpkg.domain.models import Dependency, Package

logger = structlog.get_logger(__name__)


class PackageSource(Protocol):
    def resolve(self, ref: str, language: str = "") -> Package: ...


@dataclass(frozen=True, slots=True)
class ImportRecord:
    """One hash under a package name: its version and who imports it."""

    version: str
    importers: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DuplicateImport:
    name: str
    imports: tuple[tuple[str, ImportRecord], ...]

    @property
    def hashes(self) -> tuple[str, ...]:
        return tuple(ref for ref, _ in self.imports)


@dataclass(frozen=True, slots=True)
class EdgeMismatch:
    dependency: Dependency
    field: Literal["name", "version"]
    expected: str
    actual: str

    @property
    def message(self) -> str:
        if self.field == "name":
            return (
                f"dependency {self.dependency.name} references a package "
                f"with name {self.actual}"
            )
        return (
            f"dependency {self.dependency.name} has version {self.expected} "
            f"but the referenced package has version {self.actual}"
        )


@dataclass(frozen=True, slots=True)
class CheckReport:
    duplicates: tuple[DuplicateImport, ...]
    mismatches: tuple[EdgeMismatch, ...]
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.duplicates and not self.mismatches

    def format_lines(self) -> list[str]:
        lines = list(self.warnings)
        for duplicate in self.duplicates:
            lines.append(f"package {duplicate.name} imported as:")
            for ref, record in duplicate.imports:
                lines.append(f"  - {record.version or '(no version)'} {ref}")
                lines.extend(f"    - {importer}" for importer in record.importers)
        lines.extend(mismatch.message for mismatch in self.mismatches)
        return lines


class _Import:
    __slots__ = ("importers", "version")

    def __init__(self, version: str, importer: str) -> None:
        self.version = version
        self.importers = [importer]


def check_package(root: Package, source: PackageSource) -> CheckReport:
    """Walk ``root``'s dependency graph and collect every consistency problem."""

    index: dict[str, dict[str, _Import]] = {}
    loaded: dict[str, Package] = {}
    warnings: list[str] = []

    def load(dependency: Dependency, importer: Package) -> Package:
        package = loaded.get(dependency.hash)
        if package is None:
            package = source.resolve(dependency.hash, importer.language)
            loaded[dependency.hash] = package
        return package

    stack = [root]
    while stack:
        importer = stack.pop()
        for dependency in importer.iter_dependencies():
            target = load(dependency, importer)
            by_hash = index.setdefault(target.name, {})
            existing = by_hash.get(dependency.hash)
            if existing is not None:
                existing.importers.append(importer.name)
                continue
            if target.version and parse_version(target.version) is None:
                warnings.append(
                    f"package {target.name} ({dependency.hash}) has an invalid version "
                    f"'{target.version}'"
                )
            by_hash[dependency.hash] = _Import(target.version, importer.name)
            stack.append(target)

    duplicates = tuple(
        _duplicate(name, index[name]) for name in sorted(index) if len(index[name]) > 1
    )
    mismatches: list[EdgeMismatch] = []
    for dependency in root.iter_dependencies():
        target = load(dependency, root)
        if dependency.name != target.name:
            mismatches.append(EdgeMismatch(dependency, "name", dependency.name, target.name))
        if dependency.version != target.version:
            mismatches.append(
                EdgeMismatch(dependency, "version", dependency.version, target.version)
            )

    report = CheckReport(
        duplicates=duplicates, mismatches=tuple(mismatches), warnings=tuple(warnings)
    )
    logger.info(
        "check_finished",
        root_package=root.name,
        packages=len(loaded),
        duplicates=len(report.duplicates),
        mismatches=len(report.mismatches),
    )
    return report


def _duplicate(name: str, by_hash: dict[str, _Import]) -> DuplicateImport:
    ordered = sorted(by_hash, key=lambda ref: (version_sort_key(by_hash[ref].version), ref))
    return DuplicateImport(
        name=name,
        imports=tuple(
            (ref, ImportRecord(by_hash[ref].version, tuple(sorted(by_hash[ref].importers))))
            for ref in ordered
        ),
    )


__all__ = [
    "CheckReport",
    "DuplicateImport",
    "EdgeMismatch",
    "ImportRecord",
    "PackageSource",
    "check_package",
]
