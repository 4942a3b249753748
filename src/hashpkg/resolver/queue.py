"""FIFO of pending dependency edges, deduplicated by hash."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hashpkg.domain.models import Dependency, Package


class DependencyQueue:
    """Breadth-first work queue that never admits the same hash twice.

    A hash counts as seen from the moment it is enqueued, whether or not it
    has been dequeued or resolved since.
    """

    __slots__ = ("_pending", "_seen")

    def __init__(self, dependencies: Iterable[Dependency] = ()) -> None:
        self._pending: deque[Dependency] = deque()
        self._seen: set[str] = set()
        for dependency in dependencies:
            self.add(dependency)

    def add(self, dependency: Dependency) -> bool:
        if dependency.hash in self._seen:
            return False
        self._seen.add(dependency.hash)
        self._pending.append(dependency)
        return True

    def enqueue(self, package: Package) -> int:
        """Append every unseen dependency of ``package``; return how many were added."""

        return sum(1 for dependency in package.iter_dependencies() if self.add(dependency))

    def dequeue(self) -> Dependency | None:
        if not self._pending:
            return None
        return self._pending.popleft()

    def seen(self, ref: str) -> bool:
        return ref in self._seen

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def __len__(self) -> int:
        return len(self._pending)

    def __bool__(self) -> bool:
        return bool(self._pending)


__all__ = ["DependencyQueue"]
