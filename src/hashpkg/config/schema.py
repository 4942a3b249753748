"""
hashpkg — configuration schema and validation.

File: src/hashpkg/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys, and reject secret-looking keys outright.
- Deterministic deep-merge for layering user, project, env, and CLI values.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from hashpkg.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_LOCAL_INSTALL_DIR,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    SUBTOOL_PREFIX,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "private_key",
    "password",
    "secret",
)

# Config paths normalized relative to the file that set them.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("store", "local_root"),
    ("install", "global_root"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class StoreConfig(TypedDict):
    backend: Literal["local", "ipfs"]
    api_url: str
    local_root: str
    timeout_seconds: float


class InstallConfig(TypedDict):
    max_parallel: int
    fetch_attempts: int
    retry_backoff_seconds: float
    local_dir: str
    global_root: str


class HooksConfig(TypedDict):
    binary_prefix: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_console: bool
    redact_secrets: bool


class UserConfig(TypedDict, total=False):
    name: str
    email: str


class HashpkgConfig(TypedDict):
    meta: MetaConfig
    store: StoreConfig
    install: InstallConfig
    hooks: HooksConfig
    observability: ObservabilityConfig
    user: UserConfig


DEFAULT_CONFIG: Final[HashpkgConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "store": {
        "backend": "ipfs",
        "api_url": "http://127.0.0.1:5001",
        "local_root": "~/.hashpkg/store",
        "timeout_seconds": 60.0,
    },
    "install": {
        "max_parallel": DEFAULT_MAX_PARALLEL,
        "fetch_attempts": DEFAULT_FETCH_ATTEMPTS,
        "retry_backoff_seconds": DEFAULT_RETRY_BACKOFF_SECONDS,
        "local_dir": DEFAULT_LOCAL_INSTALL_DIR,
        "global_root": "~/.hashpkg/global",
    },
    "hooks": {
        "binary_prefix": SUBTOOL_PREFIX,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "~/.hashpkg/logs",
        "log_to_console": False,
        "redact_secrets": True,
    },
    "user": {},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> HashpkgConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str], dict[str, Any]]] = {
        "meta": lambda section, path: _validate_meta(section, path, issues),
        "store": lambda section, path: _validate_store(section, path, issues),
        "install": lambda section, path: _validate_install(section, path, issues),
        "hooks": lambda section, path: _validate_hooks(section, path, issues),
        "observability": lambda section, path: _validate_observability(section, path, issues),
        "user": lambda section, path: _validate_user(section, path, issues),
    }
    _reject_unknown_keys(payload, set(validators), "", issues)
    _require_keys(payload, set(validators) - {"user"}, "", issues)

    out: dict[str, Any] = {}
    for key, validator in validators.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            out[key] = validator(section, key)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            if parsed != ConfigSchemaVersion:
                issues.add(
                    _join(path, "schema_version"),
                    f"schema version {parsed} is not supported (expected {ConfigSchemaVersion})",
                )
            out["schema_version"] = parsed
    return out


def _validate_store(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"backend", "api_url", "local_root", "timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "backend" in payload:
        backend = _as_enum(
            payload["backend"], _join(path, "backend"), issues, allowed_values=("local", "ipfs")
        )
        if backend is not None:
            out["backend"] = backend
    if "api_url" in payload:
        api_url = _as_str(payload["api_url"], _join(path, "api_url"), issues)
        if api_url is not None:
            if not api_url.startswith(("http://", "https://")):
                issues.add(_join(path, "api_url"), "must be an http(s) URL")
            else:
                out["api_url"] = api_url.rstrip("/")
    if "local_root" in payload:
        local_root = _as_path_text(payload["local_root"], _join(path, "local_root"), issues)
        if local_root is not None:
            out["local_root"] = local_root
    if "timeout_seconds" in payload:
        timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.001
        )
        if timeout is not None:
            out["timeout_seconds"] = timeout
    return out


def _validate_install(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "max_parallel",
        "fetch_attempts",
        "retry_backoff_seconds",
        "local_dir",
        "global_root",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in ("max_parallel", "fetch_attempts"):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed is not None:
                out[key] = parsed
    if "retry_backoff_seconds" in payload:
        backoff = _as_float(
            payload["retry_backoff_seconds"],
            _join(path, "retry_backoff_seconds"),
            issues,
            minimum=0.0,
        )
        if backoff is not None:
            out["retry_backoff_seconds"] = backoff
    if "local_dir" in payload:
        local_dir = _as_path_text(payload["local_dir"], _join(path, "local_dir"), issues)
        if local_dir is not None:
            if local_dir.startswith("/") or ".." in local_dir.split("/"):
                issues.add(_join(path, "local_dir"), "must be a relative path inside the package")
            else:
                out["local_dir"] = local_dir
    if "global_root" in payload:
        global_root = _as_path_text(payload["global_root"], _join(path, "global_root"), issues)
        if global_root is not None:
            out["global_root"] = global_root
    return out


def _validate_hooks(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"binary_prefix"}, path, issues)
    _require_keys(payload, {"binary_prefix"}, path, issues)
    out: dict[str, Any] = {}
    if "binary_prefix" in payload:
        prefix = _as_str(payload["binary_prefix"], _join(path, "binary_prefix"), issues)
        if prefix is not None:
            if "/" in prefix or "\\" in prefix:
                issues.add(_join(path, "binary_prefix"), "must be a bare executable name prefix")
            else:
                out["binary_prefix"] = prefix
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_console", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if level is not None:
            out["log_level"] = level
    if "log_dir" in payload:
        log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if log_dir is not None:
            out["log_dir"] = log_dir
    for key in ("log_to_console", "redact_secrets"):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_user(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"name", "email"}, path, issues)
    out: dict[str, Any] = {}
    for key in ("name", "email"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(key_path, "embedded secret values are forbidden in config files")
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "HashpkgConfig",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
