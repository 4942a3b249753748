"""Dotted query paths over raw manifest JSON, used by ``view`` and ``set``.

Syntax: ``a.b`` walks object keys, ``[3]`` indexes an array, and
``[sub.query=value]`` selects the first array element whose ``sub.query``
equals the string ``value``. Brackets may nest inside a selector.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hashpkg.domain.models import JSONValue


class QueryError(ValueError):
    """Raised for malformed query paths or paths that do not exist in a tree."""


@dataclass(frozen=True, slots=True)
class PatchPath:
    segments: tuple[str, ...]

    @classmethod
    def parse(cls, query: str) -> PatchPath:
        return cls(tuple(split_query(query)))

    def __str__(self) -> str:
        out = ""
        for segment in self.segments:
            if segment.startswith("["):
                out += segment
            else:
                out += f".{segment}" if out else segment
        return out

    def get(self, tree: JSONValue) -> JSONValue:
        current = tree
        for index, segment in enumerate(self.segments):
            current = _step(current, segment, self.segments[: index + 1])
        return current

    def set(self, tree: JSONValue, value: JSONValue) -> JSONValue:
        """Return a copy of ``tree`` with the node at this path replaced by ``value``."""

        if not self.segments:
            return copy.deepcopy(value)
        updated = copy.deepcopy(tree)
        parent = PatchPath(self.segments[:-1]).get(updated)
        last = self.segments[-1]
        if isinstance(parent, dict):
            if last.startswith("["):
                raise QueryError(f"{self}: cannot use [..] on an object")
            parent[last] = copy.deepcopy(value)
        elif isinstance(parent, list):
            parent[_array_index(parent, last, self.segments)] = copy.deepcopy(value)
        else:
            raise QueryError(f"{PatchPath(self.segments[:-1])} is not indexable")
        return updated


def split_query(query: str) -> list[str]:
    """Split ``a[0].b`` into ``["a", "[0]", "b"]``."""

    remaining = query.lstrip(".")
    segments: list[str] = []
    while remaining:
        cut = _first_of(remaining, ".[")
        if cut == -1:
            segments.append(remaining)
            break
        if cut:
            segments.append(remaining[:cut])
        if remaining[cut] == ".":
            remaining = remaining[cut + 1 :]
            continue
        close = find_closing_bracket(remaining[cut + 1 :])
        if close == -1:
            raise QueryError(f"closing bracket not found in {query!r}")
        end = cut + close + 2
        segments.append(remaining[cut:end])
        remaining = remaining[end:].lstrip(".")
    return segments


def find_closing_bracket(text: str) -> int:
    """Index of the ``]`` closing an already-open bracket, honouring nesting."""

    depth = 0
    for index, char in enumerate(text):
        if char == "[":
            depth += 1
        elif char == "]":
            if depth == 0:
                return index
            depth -= 1
    return -1


def _first_of(text: str, chars: str) -> int:
    positions = [pos for pos in (text.find(char) for char in chars) if pos != -1]
    return min(positions) if positions else -1


def _step(current: JSONValue, segment: str, walked: tuple[str, ...]) -> JSONValue:
    if isinstance(current, dict):
        if segment not in current:
            raise QueryError(f"key not found: {PatchPath(walked)}")
        return current[segment]
    if isinstance(current, list):
        return current[_array_index(current, segment, walked)]
    raise QueryError(f"{PatchPath(walked[:-1])} is not indexable")


def _array_index(items: list[JSONValue], segment: str, walked: tuple[str, ...]) -> int:
    if not (segment.startswith("[") and segment.endswith("]")):
        raise QueryError("must use [N] notation for accessing arrays")
    inner = segment[1:-1].strip()
    if not inner:
        raise QueryError("queries on multiple array members are not supported")

    if "=" in inner:
        subquery, _, expected = inner.rpartition("=")
        path = PatchPath.parse(subquery.strip())
        for index, item in enumerate(items):
            try:
                found = path.get(item)
            except QueryError:
                continue
            if found == expected.strip():
                return index
        raise QueryError(f"no child matching {segment} in {PatchPath(walked[:-1])}")

    try:
        index = int(inner)
    except ValueError as exc:
        raise QueryError(f"invalid array index {inner!r}") from exc
    if not -len(items) <= index < len(items):
        raise QueryError(f"index {index} out of range at {PatchPath(walked)}")
    return index


__all__ = ["PatchPath", "QueryError", "find_closing_bracket", "split_query"]
