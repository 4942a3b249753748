"""
hashpkg — runtime config loader.

File: src/hashpkg/config/loader.py
Last updated: 2026-10-19

Purpose
- Build the effective config by stacking layers over the built-in defaults.

Layers, lowest first
- ``~/.hashpkg.toml`` (user file).
- ``./hashpkg.toml`` or an explicit ``--config`` path (project file).
- ``HASHPKG_<SECTION>_<KEY>`` environment variables, plus bare ``IPFS_API``.
- Dotted CLI overrides such as ``{"install.max_parallel": 4}``.

Relative paths in a file layer resolve against that file's directory; env and
CLI paths resolve against the working directory.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from hashpkg.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "hashpkg.toml"
USER_CONFIG_FILE: Final[str] = ".hashpkg.toml"
ENV_PREFIX: Final[str] = "HASHPKG_"
IPFS_API_ENV: Final[str] = "IPFS_API"

Key = tuple[str, ...]

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Keys that are settable from the environment although they have no default.
_ENV_ONLY_KEYS: Final[dict[Key, type]] = {("user", "name"): str, ("user", "email"): str}


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    user_config_path: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> dict[str, Any]:
    """Return the validated effective config; later layers win key by key."""

    workdir = (cwd or Path.cwd()).resolve()
    env = os.environ if environ is None else environ

    config = normalize_paths(default_config(), base_dir=Path.home())
    for path, required in (
        (_user_file(user_config_path), user_config_path is not None),
        (_project_file(config_path, workdir), config_path is not None),
    ):
        layer = _read_toml(path, required=required)
        config = merge_config(config, normalize_paths(layer, base_dir=path.parent))
    config = assert_valid_config(config)

    # Env coercion is typed by the validated file layers, so it runs after them.
    for layer in (_env_layer(config, env), _cli_layer(cli_overrides or {})):
        config = merge_config(config, normalize_paths(layer, base_dir=workdir))
    return assert_valid_config(config)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with every known path field made absolute under ``base_dir``."""

    result = merge_config({}, config)
    for key in PATH_FIELDS:
        raw = _lookup(result, key)
        if isinstance(raw, str) and raw.strip():
            _assign(result, key, _absolute(raw, base_dir))
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _user_file(explicit: str | Path | None) -> Path:
    if explicit is None:
        return Path.home() / USER_CONFIG_FILE
    return Path(explicit).expanduser().resolve()


def _project_file(explicit: str | Path | None, workdir: Path) -> Path:
    if explicit is None:
        return workdir / DEFAULT_CONFIG_FILE
    return Path(explicit).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        data = path.read_bytes()
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    try:
        return tomllib.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    settable: dict[Key, type] = dict(_ENV_ONLY_KEYS)
    for key, value in _leaves(config):
        if key != ("meta", "schema_version") and isinstance(value, (bool, int, float, str)):
            settable[key] = type(value)

    layer: dict[str, Any] = {}
    for key in sorted(settable):
        name = env_name(key)
        if name in environ:
            _assign(layer, key, _coerce(environ[name], settable[key], name, key))

    # IPFS tooling exports the daemon address without our prefix.
    daemon = environ.get(IPFS_API_ENV, "").strip()
    if daemon and env_name(("store", "api_url")) not in environ:
        _assign(layer, ("store", "api_url"), daemon)
    return layer


def env_name(key: Key) -> str:
    """``("install", "max_parallel")`` -> ``HASHPKG_INSTALL_MAX_PARALLEL``."""

    return ENV_PREFIX + "_".join(part.upper() for part in key)


def _parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered not in _TRUTHY | _FALSY:
        raise ValueError(text)
    return lowered in _TRUTHY


_COERCERS: Final[dict[type, tuple[Callable[[str], object], str]]] = {
    bool: (_parse_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
    int: (int, "an integer"),
    float: (float, "a number"),
    str: (str, "a string"),
}


def _coerce(raw: str, kind: type, name: str, key: Key) -> object:
    parse, expected = _COERCERS[kind]
    try:
        return parse(raw.strip())
    except ValueError as exc:
        raise ConfigLoadError(f"{name} -> {'.'.join(key)} must be {expected}") from exc


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        key = tuple(part for part in dotted.split(".") if part)
        if not key:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        if isinstance(value, Mapping):
            value = merge_config({}, value)
        layer = merge_config(layer, _nest(key, value))
    return layer


def _leaves(tree: Mapping[str, object], prefix: Key = ()) -> Iterator[tuple[Key, object]]:
    for name, value in tree.items():
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, name))
        else:
            yield (*prefix, name), value


def _nest(key: Key, value: object) -> dict[str, Any]:
    nested: Any = value
    for part in reversed(key):
        nested = {part: nested}
    return nested


def _lookup(tree: Mapping[str, object], key: Key) -> object | None:
    node: object = tree
    for part in key:
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def _assign(tree: dict[str, Any], key: Key, value: object) -> None:
    *parents, leaf = key
    for part in parents:
        child = tree.get(part)
        if not isinstance(child, dict):
            child = tree[part] = {}
        tree = child
    tree[leaf] = value


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "IPFS_API_ENV",
    "USER_CONFIG_FILE",
    "dump_effective_config",
    "env_name",
    "load_config",
    "normalize_paths",
]
