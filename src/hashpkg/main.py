"""Executable CLI entrypoint for ``hashpkg``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    FAILURE = 1
    USAGE = 2
    CHECK_FAILED = 3
    INTERRUPTED = 130


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m hashpkg`` and the console script."""

    try:
        from hashpkg.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def main() -> None:
    """Console-script entrypoint."""

    raise SystemExit(cli_entrypoint())


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in set(ExitCode):
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.FAILURE)


def _route_exception(exc: BaseException) -> ExitCode:
    if isinstance(exc, KeyboardInterrupt):
        return ExitCode.INTERRUPTED
    config_error_types = _load_config_error_types()
    for item in _iter_exception_chain(exc):
        if isinstance(item, config_error_types):
            return ExitCode.USAGE
    return ExitCode.FAILURE


def _load_config_error_types() -> tuple[type[BaseException], ...]:
    from hashpkg.config.loader import ConfigLoadError
    from hashpkg.config.schema import ConfigValidationError

    return (ConfigLoadError, ConfigValidationError)


def _is_expected(exc: BaseException) -> bool:
    from hashpkg.errors import HashpkgError
    from hashpkg.storage.base import StorageError

    return isinstance(exc, (HashpkgError, StorageError, OSError, ValueError))


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None:
        marker = id(current)
        if marker in seen:
            break
        seen.add(marker)
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
            continue
        if current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
            continue
        break
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERRUPTED:
        _write_stderr("interrupted")
        return
    if exit_code is ExitCode.FAILURE and not _is_expected(exc):
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint", "main"]
