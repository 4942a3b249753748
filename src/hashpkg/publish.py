"""Publish a package directory as a content-addressed tree.

The published object is an empty directory holding one link, named after the
package, to the package's own file tree. That wrapper is what install roots
store under ``<hash>/<name>``.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import pathspec
import structlog

from hashpkg.constants import IGNORE_FILENAME, PUBLISH_ALWAYS_IGNORED

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hashpkg.storage.base import ContentStore

logger = structlog.get_logger(__name__)

_IGNORE_FILES = (".gitignore", IGNORE_FILENAME)

# name -> subtree; ``None`` marks a file.
_FileTree = dict[str, "_FileTree | None"]


class IgnoreRules:
    """gitignore semantics over ``.gitignore`` then ``.hashpkgignore``.

    Later patterns win, so a ``!pattern`` line in either file re-includes
    paths excluded above it. Top-level tooling directories are never published.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(patterns)
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", self.patterns)

    @classmethod
    def load(cls, package_dir: Path) -> IgnoreRules:
        patterns: list[str] = []
        for filename in _IGNORE_FILES:
            path = package_dir / filename
            if not path.is_file():
                continue
            for raw in path.read_text(encoding="utf-8").splitlines():
                line = raw.rstrip()
                if not line.strip() or line.startswith("#"):
                    continue
                patterns.append(line)
        return cls(patterns)

    def ignored(self, rel: PurePosixPath) -> bool:
        if rel.parts and rel.parts[0] in PUBLISH_ALWAYS_IGNORED:
            return True
        return self._spec.match_file(str(rel))


class Publisher:
    def __init__(self, store: ContentStore) -> None:
        self.store = store

    def collect_files(self, package_dir: Path) -> list[PurePosixPath]:
        rules = IgnoreRules.load(package_dir)
        files: list[PurePosixPath] = []
        for path in sorted(package_dir.rglob("*")):
            if not path.is_file() or path.is_symlink():
                continue
            rel = PurePosixPath(path.relative_to(package_dir).as_posix())
            if rules.ignored(rel):
                continue
            files.append(rel)
        return files

    def publish(self, package_dir: Path, name: str) -> str:
        """Add every publishable file under ``package_dir`` and return the wrapper hash."""

        package_dir = Path(package_dir)
        files = self.collect_files(package_dir)
        tree: _FileTree = {}
        for rel in files:
            node = tree
            for part in rel.parts[:-1]:
                child = node.setdefault(part, {})
                assert child is not None
                node = child
            node[rel.parts[-1]] = None

        content = self._add_tree(tree, package_dir)
        wrapper = self.store.patch_link(self.store.new_empty_dir(), name, content)
        logger.info("package_published", package=name, ref=wrapper, files=len(files))
        return wrapper

    def _add_tree(self, tree: _FileTree, directory: Path) -> str:
        current = self.store.new_empty_dir()
        for entry in sorted(tree):
            subtree = tree[entry]
            if subtree is None:
                with (directory / entry).open("rb") as reader:
                    child = self.store.add(reader)
            else:
                child = self._add_tree(subtree, directory / entry)
            current = self.store.patch_link(current, entry, child)
        return current


__all__ = ["IgnoreRules", "Publisher"]
