"""Shared fixtures for hashpkg tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hashpkg.observability.logging import configure_structlog
from tests.support import RecordingHookRunner, Registry, StaticRoots

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True, scope="session")
def _structlog_to_stdlib() -> None:
    configure_structlog()


@pytest.fixture
def registry(tmp_path: Path) -> Registry:
    return Registry(tmp_path / "registry")


@pytest.fixture
def roots(tmp_path: Path) -> StaticRoots:
    return StaticRoots(local=tmp_path / "vendor", global_root=tmp_path / "global")


@pytest.fixture
def hooks() -> RecordingHookRunner:
    return RecordingHookRunner()
