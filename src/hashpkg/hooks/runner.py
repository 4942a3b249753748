"""
hashpkg — subtool hook runner

File: src/hashpkg/hooks/runner.py
Last updated: 2026-10-19

Purpose
- Locate the language subtool binary for a package and run its lifecycle hooks.

Functional requirements
- Binary name is ``<prefix><language>``; looked up on PATH, then next to the running executable.
- "No subtool" is a first-class ``SubtoolStatus`` value, never an empty path.
- Missing subtool is a no-op unless the hook is required; nonzero exit is always an error.
- Hooks inherit stdio, except ``capture_hook`` which returns stdout.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from hashpkg.constants import SUBTOOL_PREFIX
from hashpkg.errors import HookError, HookFailedError, SubtoolMissingError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = structlog.get_logger(__name__)


class SubtoolStatus(StrEnum):
    FOUND = "found"
    MISSING = "missing"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class Subtool:
    """Result of looking up the subtool that governs one language tag."""

    language: str
    status: SubtoolStatus
    binary: str = ""
    path: Path | None = None

    @property
    def found(self) -> bool:
        return self.status is SubtoolStatus.FOUND and self.path is not None


class HookRunner(Protocol):
    def run_hook(self, hook: str, language: str, required: bool, *args: str) -> None: ...

    def capture_hook(
        self, hook: str, language: str, *args: str, cwd: Path | None = None
    ) -> str | None: ...


class SubtoolLocator:
    """Finds ``<prefix><language>`` executables; results are cached per instance."""

    def __init__(
        self,
        prefix: str = SUBTOOL_PREFIX,
        *,
        which: Callable[[str], str | None] = shutil.which,
        executable: Path | str | None = None,
    ) -> None:
        self.prefix = prefix
        self._which = which
        self._executable = Path(executable if executable is not None else sys.argv[0])
        self._cache: dict[str, Subtool] = {}

    def binary_name(self, language: str) -> str:
        return f"{self.prefix}{language}"

    def locate(self, language: str) -> Subtool:
        if not language:
            return Subtool(language=language, status=SubtoolStatus.NONE)
        cached = self._cache.get(language)
        if cached is not None:
            return cached

        binary = self.binary_name(language)
        on_path = self._which(binary)
        if on_path is not None:
            subtool = Subtool(language, SubtoolStatus.FOUND, binary, Path(on_path))
        else:
            near = self._near_executable(binary)
            if near is not None:
                subtool = Subtool(language, SubtoolStatus.FOUND, binary, near)
            else:
                logger.debug("subtool_missing", language=language, binary=binary)
                subtool = Subtool(language, SubtoolStatus.MISSING, binary)
        self._cache[language] = subtool
        return subtool

    def _near_executable(self, binary: str) -> Path | None:
        if self._executable.parent == Path():
            return None
        candidate = self._executable.parent / binary
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
        return None


class SubprocessHookRunner:
    """``HookRunner`` that executes subtools as child processes."""

    def __init__(
        self,
        locator: SubtoolLocator | None = None,
        *,
        runner: Callable[..., subprocess.CompletedProcess[Any]] = subprocess.run,
    ) -> None:
        self.locator = locator if locator is not None else SubtoolLocator()
        self._runner = runner

    def run_hook(self, hook: str, language: str, required: bool, *args: str) -> None:
        subtool = self.locator.locate(language)
        if not subtool.found:
            if required:
                binary = self.locator.binary_name(language) if language else ""
                raise SubtoolMissingError(hook, language, binary)
            logger.debug("hook_skipped", hook=hook, language=language, status=subtool.status.value)
            return

        command = self._command(subtool, hook, args)
        completed = self._invoke(hook, language, command)
        if completed.returncode != 0:
            raise HookFailedError(hook, language, completed.returncode)
        logger.info("hook_ran", hook=hook, language=language, hook_args=list(args))

    def capture_hook(
        self, hook: str, language: str, *args: str, cwd: Path | None = None
    ) -> str | None:
        """Run ``hook`` with stdout captured; ``None`` when no subtool exists."""

        subtool = self.locator.locate(language)
        if not subtool.found:
            return None
        command = self._command(subtool, hook, args)
        completed = self._invoke(
            hook,
            language,
            command,
            capture_output=True,
            text=True,
            cwd=None if cwd is None else str(cwd),
        )
        if completed.returncode != 0:
            raise HookFailedError(
                hook, language, completed.returncode, stderr=completed.stderr or ""
            )
        return str(completed.stdout or "").strip()

    @staticmethod
    def _command(subtool: Subtool, hook: str, args: Sequence[str]) -> list[str]:
        return [str(subtool.path), "hook", hook, *args]

    def _invoke(
        self, hook: str, language: str, command: list[str], **kwargs: Any
    ) -> subprocess.CompletedProcess[Any]:
        try:
            return self._runner(command, check=False, **kwargs)
        except OSError as exc:
            raise HookError(hook, language, f"unable to execute {command[0]}: {exc}") from exc


__all__ = [
    "HookRunner",
    "SubprocessHookRunner",
    "Subtool",
    "SubtoolLocator",
    "SubtoolStatus",
]
