"""Frozen manifest and lock-file records with strict validation and JSON mapping."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, NoReturn

from hashpkg.constants import LOCK_FILE_VERSION
from hashpkg.utils.hashing import is_sha256_hex

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_CIDV0_RE = re.compile(r"^Qm[1-9A-HJ-NP-Za-km-z]{44}$")

# Manifest keys the engine interprets; everything else is passthrough.
_PACKAGE_KEYS = ("name", "version", "language", "subtoolRequired", "dependencies")
_DEPENDENCY_KEYS = frozenset({"name", "hash", "version", "author"})


def looks_like_hash(value: str) -> bool:
    """Return ``True`` for a sha256 hex object id or a CIDv0 multihash."""

    return is_sha256_hex(value) or bool(_CIDV0_RE.fullmatch(value))


@dataclass(frozen=True, slots=True)
class Dependency:
    """Edge inside an importer's manifest pointing at another package by hash.

    Only ``hash`` is required. Keys the engine does not interpret ride along in
    ``extra`` and are written back unchanged.
    """

    name: str
    hash: str
    version: str = ""
    author: str | None = None
    extra: Mapping[str, JSONValue] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            key: _copy_json(value) for key, value in self.extra.items()
        }
        if self.author is not None:
            payload["author"] = self.author
        payload["hash"] = self.hash
        if self.name:
            payload["name"] = self.name
        if self.version:
            payload["version"] = self.version
        return payload

    @classmethod
    def from_dict(cls, value: object, path: str = "dependency") -> Dependency:
        data = _expect_object(value, path)
        author = data.get("author")
        return cls(
            name=_as_str(data.get("name", ""), f"{path}.name", min_len=0),
            hash=_as_str(data.get("hash"), f"{path}.hash"),
            version=_as_str(data.get("version", ""), f"{path}.version", min_len=0),
            author=None if author is None else _as_str(author, f"{path}.author", min_len=0),
            extra={
                key: _copy_json(item)
                for key, item in data.items()
                if key not in _DEPENDENCY_KEYS
            },
        )


@dataclass(frozen=True, slots=True)
class Package:
    """A loaded manifest. Immutable; edits go through ``with_*`` copies."""

    name: str
    version: str = ""
    language: str = ""
    dependencies: tuple[Dependency, ...] = ()
    subtool_required: bool = False
    extra: Mapping[str, JSONValue] = field(default_factory=dict, hash=False)

    def iter_dependencies(self) -> Iterator[Dependency]:
        yield from self.dependencies

    def with_dependencies(self, dependencies: Iterable[Dependency]) -> Package:
        return replace(self, dependencies=tuple(dependencies))

    def with_version(self, version: str) -> Package:
        return replace(self, version=version)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"name": self.name}
        for key, value in self.extra.items():
            payload[key] = _copy_json(value)
        payload["version"] = self.version
        if self.language:
            payload["language"] = self.language
        if self.subtool_required:
            payload["subtoolRequired"] = True
        if self.dependencies:
            payload["dependencies"] = [dep.to_dict() for dep in self.dependencies]
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, value: object, path: str = "package") -> Package:
        data = _expect_object(value, path)
        raw_deps = data.get("dependencies", [])
        if raw_deps is None:
            raw_deps = []
        if not isinstance(raw_deps, list):
            _fail(f"{path}.dependencies", f"expected array, got {type(raw_deps).__name__}")
        dependencies = tuple(
            Dependency.from_dict(item, f"{path}.dependencies[{index}]")
            for index, item in enumerate(raw_deps)
        )
        subtool_required = data.get("subtoolRequired", False)
        if not isinstance(subtool_required, bool):
            _fail(f"{path}.subtoolRequired", "expected boolean")
        extra = {key: _copy_json(item) for key, item in data.items() if key not in _PACKAGE_KEYS}
        return cls(
            name=_as_str(data.get("name"), f"{path}.name"),
            version=_as_str(data.get("version", ""), f"{path}.version", min_len=0),
            language=_as_str(data.get("language", ""), f"{path}.language", min_len=0),
            dependencies=dependencies,
            subtool_required=subtool_required,
            extra=extra,
        )

    @classmethod
    def from_json(cls, text: str, path: str = "package") -> Package:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            _fail(path, f"invalid JSON: {exc}")
        return cls.from_dict(parsed, path)


@dataclass(frozen=True, slots=True)
class LockDep:
    """One pinned entry of a lock file, with its own nested pins."""

    ref: str
    deps: Mapping[str, Mapping[str, LockDep]] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"ref": self.ref}
        if self.deps:
            payload["deps"] = _lock_tree_to_dict(self.deps)
        return payload

    @classmethod
    def from_dict(cls, value: object, path: str) -> LockDep:
        data = _expect_object(value, path)
        nested = data.get("deps")
        return cls(
            ref=_as_str(data.get("ref"), f"{path}.ref"),
            deps={} if nested is None else _lock_tree_from_dict(nested, f"{path}.deps"),
        )


@dataclass(frozen=True, slots=True)
class LockFile:
    """Cross-language install plan: ``deps[language][name] -> LockDep``."""

    language: str
    deps: Mapping[str, Mapping[str, LockDep]] = field(default_factory=dict, hash=False)
    lock_version: int = LOCK_FILE_VERSION

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "deps": _lock_tree_to_dict(self.deps),
            "language": self.language,
            "lockVersion": self.lock_version,
        }

    @classmethod
    def from_dict(cls, value: object, path: str = "lock") -> LockFile:
        data = _expect_object(value, path)
        version = data.get("lockVersion")
        if isinstance(version, bool) or not isinstance(version, int):
            _fail(f"{path}.lockVersion", "expected integer")
        if version != LOCK_FILE_VERSION:
            _fail(
                f"{path}.lockVersion",
                f"unsupported lock version {version}; expected {LOCK_FILE_VERSION}",
            )
        raw_deps = data.get("deps")
        return cls(
            language=_as_str(data.get("language", ""), f"{path}.language", min_len=0),
            deps={} if raw_deps is None else _lock_tree_from_dict(raw_deps, f"{path}.deps"),
            lock_version=version,
        )


def _lock_tree_to_dict(tree: Mapping[str, Mapping[str, LockDep]]) -> dict[str, JSONValue]:
    out: dict[str, JSONValue] = {}
    for language in sorted(tree):
        entries = tree[language]
        out[language] = {name: entries[name].to_dict() for name in sorted(entries)}
    return out


def _lock_tree_from_dict(value: object, path: str) -> dict[str, dict[str, LockDep]]:
    languages = _expect_object(value, path)
    out: dict[str, dict[str, LockDep]] = {}
    for language, entries_raw in languages.items():
        entries = _expect_object(entries_raw, f"{path}.{language}")
        out[language] = {
            name: LockDep.from_dict(item, f"{path}.{language}.{name}")
            for name, item in entries.items()
        }
    return out


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _expect_object(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object key must be string, got {type(key).__name__}")
        parsed[key] = item
    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if len(value.strip()) < min_len:
        _fail(path, f"must be at least {min_len} non-blank character(s)")
    return value


def _copy_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _copy_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy_json(item) for item in value]
    raise ValueError(f"unsupported JSON value of type {type(value).__name__}")


__all__ = [
    "Dependency",
    "JSONScalar",
    "JSONValue",
    "LockDep",
    "LockFile",
    "Package",
    "looks_like_hash",
]
