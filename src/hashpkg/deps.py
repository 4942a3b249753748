"""Read-only dependency listing helpers behind the ``deps`` command."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hashpkg.errors import DependencyLookupError

if TYPE_CHECKING:
    from hashpkg.check import PackageSource
    from hashpkg.domain.models import Dependency, Package


@dataclass(slots=True)
class PackageStats:
    total_imports: int = 0
    total_depth: int = 0

    @property
    def average_depth(self) -> float:
        return self.total_depth / self.total_imports if self.total_imports else 0.0


@dataclass(slots=True)
class DependencyStats:
    """Import counts over the full (non-deduplicated) import tree."""

    total_count: int = 0
    total_unique: int = 0
    total_depth: int = 0
    packages: dict[str, PackageStats] = field(default_factory=dict)

    @property
    def average_depth(self) -> float:
        return self.total_depth / self.total_count if self.total_count else 0.0


def find_dependency(package: Package, ref: str) -> Dependency:
    """Return the single direct dependency whose name or hash is ``ref``."""

    matches = [dep for dep in package.iter_dependencies() if ref in (dep.name, dep.hash)]
    if not matches:
        raise DependencyLookupError(f"{package.name} has no dependency {ref!r}")
    if len(matches) > 1:
        hashes = ", ".join(dep.hash for dep in matches)
        raise DependencyLookupError(f"dependency reference {ref!r} is ambiguous: {hashes}")
    return matches[0]


def enumerate_dependencies(root: Package, source: PackageSource) -> dict[str, str]:
    """Map every hash in ``root``'s transitive closure to the name it was imported as."""

    found: dict[str, str] = {}
    stack = [root]
    while stack:
        package = stack.pop()
        for dependency in package.iter_dependencies():
            if dependency.hash in found:
                continue
            found[dependency.hash] = dependency.name
            stack.append(source.resolve(dependency.hash, package.language))
    return found


def dependency_tree(root: Package, source: PackageSource, *, quiet: bool = False) -> list[str]:
    lines: list[str] = []
    cache: dict[str, Package] = {}

    def walk(package: Package, indent: int) -> None:
        for dependency in package.iter_dependencies():
            if quiet:
                label = dependency.hash
            else:
                label = f"{dependency.name} {dependency.hash} {dependency.version}".rstrip()
            lines.append("  " * indent + label)
            child = cache.get(dependency.hash)
            if child is None:
                child = source.resolve(dependency.hash, package.language)
                cache[dependency.hash] = child
            walk(child, indent + 1)

    walk(root, 0)
    return lines


def dependency_stats(root: Package, source: PackageSource) -> DependencyStats:
    stats = DependencyStats()
    cache: dict[str, Package] = {}

    def walk(package: Package, depth: int) -> None:
        for dependency in package.iter_dependencies():
            stats.total_count += 1
            stats.total_depth += depth
            entry = stats.packages.get(dependency.hash)
            if entry is None:
                stats.total_unique += 1
                entry = stats.packages[dependency.hash] = PackageStats()
            entry.total_imports += 1
            entry.total_depth += depth
            child = cache.get(dependency.hash)
            if child is None:
                child = source.resolve(dependency.hash, package.language)
                cache[dependency.hash] = child
            walk(child, depth + 1)

    walk(root, 1)
    return stats


__all__ = [
    "DependencyStats",
    "PackageStats",
    "dependency_stats",
    "dependency_tree",
    "enumerate_dependencies",
    "find_dependency",
]
