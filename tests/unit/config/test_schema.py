"""
hashpkg — unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-10-19

Purpose
- Validate strict config schema behavior and structured errors.

What this test file should cover
- Built-in defaults validate successfully.
- Rejects unknown keys and invalid types with actionable paths.
- Rejects embedded secrets in any section.
"""

from __future__ import annotations

import pytest

from hashpkg.config.schema import (
    ConfigSchemaVersion,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)


def _with(section: str, **values: object) -> dict[str, object]:
    return merge_config(default_config(), {section: values})


def _issue_paths(config: dict[str, object]) -> dict[str, str]:
    result = validate_config(config)
    assert not result.is_valid
    return {issue.path: issue.message for issue in result.issues}


def test_defaults_validate() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config["meta"]["schema_version"] == ConfigSchemaVersion
    assert result.config["store"]["backend"] == "ipfs"


def test_default_config_is_a_fresh_copy() -> None:
    first = default_config()
    first["install"]["max_parallel"] = 1

    assert default_config()["install"]["max_parallel"] != 1


def test_merge_config_is_deep_and_non_destructive() -> None:
    base = {"install": {"max_parallel": 2, "fetch_attempts": 4}}

    merged = merge_config(base, {"install": {"max_parallel": 9}})

    assert merged == {"install": {"max_parallel": 9, "fetch_attempts": 4}}
    assert base["install"]["max_parallel"] == 2


@pytest.mark.parametrize(
    ("section", "values", "path", "message"),
    [
        ("install", {"max_parallel": 0}, "install.max_parallel", "must be >= 1"),
        ("install", {"max_parallel": True}, "install.max_parallel", "expected integer"),
        ("install", {"local_dir": "../up"}, "install.local_dir", "relative path"),
        ("store", {"backend": "s3"}, "store.backend", "invalid value 's3'"),
        ("store", {"api_url": "127.0.0.1:5001"}, "store.api_url", "http(s) URL"),
        ("hooks", {"binary_prefix": "bin/hashpkg-"}, "hooks.binary_prefix", "bare executable"),
        ("observability", {"log_level": "TRACE"}, "observability.log_level", "invalid value"),
        ("observability", {"log_to_console": "yes"}, "observability.log_to_console", "boolean"),
        ("meta", {"schema_version": 2}, "meta.schema_version", "not supported"),
    ],
)
def test_invalid_values_are_reported_with_paths(
    section: str, values: dict[str, object], path: str, message: str
) -> None:
    issues = _issue_paths(_with(section, **values))

    assert message in issues[path]


def test_unknown_sections_and_secrets_are_rejected() -> None:
    config = merge_config(default_config(), {"plugins": {}, "user": {"password": "hunter2"}})

    issues = _issue_paths(config)

    assert issues["plugins"] == "unknown field"
    assert issues["user.password"] == "embedded secret values are forbidden in config files"


def test_missing_required_field() -> None:
    config = default_config()
    del config["store"]["api_url"]  # type: ignore[misc]

    assert _issue_paths(dict(config))["store.api_url"] == "missing required field"


def test_assert_valid_config_raises_with_rendered_issues() -> None:
    with pytest.raises(ConfigValidationError, match=r"- install.fetch_attempts: must be >= 1"):
        assert_valid_config(_with("install", fetch_attempts=0))
