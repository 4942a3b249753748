"""
hashpkg — dependency update cascade

File: src/hashpkg/update.py
Last updated: 2026-10-19

Purpose
- Substitute a dependency hash throughout a package's tree and republish every
  intermediate package whose dependencies changed, so ancestors point at new hashes.

Functional requirements
- Postorder: children are rewritten and republished before their parent is examined.
- Each republish adds ``old -> new`` to the substitution map for later edges.
- Hashes proven unaffected join a ``checked`` set and are not revisited.
- The root is rewritten but never republished; the caller persists it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

import structlog

from hashpkg.constants import HOOK_POST_UPDATE, MANIFEST_FILENAME
from hashpkg.deps import find_dependency
from hashpkg.domain.manifest import load_package, save_package
from hashpkg.errors import PackageNotFoundError
from hashpkg.store.accessor import package_dir
from hashpkg.utils.fs import temp_directory

if TYPE_CHECKING:
    from hashpkg.domain.models import Dependency, Package
    from hashpkg.hooks.runner import HookRunner
    from hashpkg.publish import Publisher
    from hashpkg.store.accessor import PackageStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CascadeResult:
    package: Package
    changed: bool
    updates: Mapping[str, str]


@dataclass(slots=True)
class _CascadeRun:
    updates: dict[str, str]
    checked: set[str] = field(default_factory=set)
    versions: dict[str, str] = field(default_factory=dict)


class UpdateCascade:
    """Rewrites dependency edges and republishes affected intermediate packages."""

    def __init__(self, packages: PackageStore, publisher: Publisher) -> None:
        self.packages = packages
        self.publisher = publisher

    def cascade(self, package: Package, updates: Mapping[str, str]) -> CascadeResult:
        run = _CascadeRun(updates=dict(updates))
        rewritten, changed = self._cascade(package, run)
        return CascadeResult(
            package=rewritten,
            changed=changed,
            updates=MappingProxyType(dict(run.updates)),
        )

    def update_dependency(
        self,
        root_dir: Path,
        old_ref: str,
        new_ref: str,
        *,
        recursive: bool = False,
        hooks: HookRunner | None = None,
    ) -> CascadeResult:
        """Point ``root_dir``'s dependency ``old_ref`` (name or hash) at ``new_ref`` and save."""

        root_dir = Path(root_dir)
        root = load_package(root_dir / MANIFEST_FILENAME)
        old = find_dependency(root, old_ref)
        if recursive:
            logger.info("recursive_update_started", old=old.hash, new=new_ref)
            result = self.cascade(root, {old.hash: new_ref})
        else:
            run = _CascadeRun(updates={old.hash: new_ref})
            version = self._version_of(new_ref, root.language, run)
            rewritten = root.with_dependencies(
                replace(dep, hash=new_ref, version=version) if dep.hash == old.hash else dep
                for dep in root.iter_dependencies()
            )
            result = CascadeResult(
                package=rewritten, changed=True, updates=MappingProxyType(dict(run.updates))
            )

        save_package(root_dir / MANIFEST_FILENAME, result.package)
        if hooks is not None:
            hooks.run_hook(HOOK_POST_UPDATE, root.language, False, old.hash, new_ref)
        return result

    def _cascade(self, package: Package, run: _CascadeRun) -> tuple[Package, bool]:
        logger.debug("cascade_visit", package=package.name)
        changed = False
        dependencies: list[Dependency] = []
        for dependency in package.iter_dependencies():
            if dependency.hash in run.checked:
                dependencies.append(dependency)
                continue

            target = run.updates.get(dependency.hash)
            if target is not None:
                logger.info(
                    "cascade_edge_updated", package=package.name, dependency=dependency.name
                )
                dependency = replace(
                    dependency,
                    hash=target,
                    version=self._version_of(target, package.language, run),
                )
                changed = True
            else:
                republished = self._fetch_and_update(dependency.hash, run)
                if republished is None:
                    run.checked.add(dependency.hash)
                else:
                    run.updates[dependency.hash] = republished
                    dependency = replace(dependency, hash=republished)
                    changed = True
            dependencies.append(dependency)

        if not changed:
            return package, False
        return package.with_dependencies(dependencies), True

    def _fetch_and_update(self, ref: str, run: _CascadeRun) -> str | None:
        with temp_directory(prefix="hashpkg-update-") as scratch:
            directory = scratch / ref
            child = self.packages.fetch_to(ref, directory)
            rewritten, changed = self._cascade(child, run)
            if not changed:
                return None
            own_dir = package_dir(directory)
            save_package(own_dir / MANIFEST_FILENAME, rewritten)
            new_ref = self.publisher.publish(own_dir, rewritten.name)
        run.versions[new_ref] = rewritten.version
        logger.info("cascade_republished", package=rewritten.name, old=ref, new=new_ref)
        return new_ref

    def _version_of(self, ref: str, language: str, run: _CascadeRun) -> str:
        known = run.versions.get(ref)
        if known is not None:
            return known
        version: str | None = None
        if self.packages.has_install_roots:
            try:
                version = self.packages.resolve(ref, language).version
            except PackageNotFoundError:
                version = None
        if version is None:
            with temp_directory(prefix="hashpkg-update-") as scratch:
                version = self.packages.fetch_to(ref, scratch / ref).version
        run.versions[ref] = version
        return version


__all__ = ["CascadeResult", "UpdateCascade"]
