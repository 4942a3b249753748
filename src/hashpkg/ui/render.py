"""Output rendering for the hashpkg CLI.

File: src/hashpkg/ui/render.py
Last updated: 2026-10-19

Purpose
- Keep command handlers free of ``print`` formatting details.
- Send results to stdout and diagnostics to stderr.

Functional requirements
- Plain-text, deterministic output; tab-separated rows stay machine-readable.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hashpkg.domain.models import JSONValue


class CLIRenderer:
    """Thin CLI output renderer."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err if self._err is not None else sys.stderr

    def text(self, line: str) -> None:
        print(line, file=self.out)

    def lines(self, entries: Sequence[str]) -> None:
        for entry in entries:
            print(entry, file=self.out)

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}", file=self.out)

    def row(self, *cells: str) -> None:
        """Print one tab-separated row."""

        print("\t".join(cells), file=self.out)

    def json_value(self, value: JSONValue) -> None:
        """Print a JSON node; strings print bare so shell pipelines get raw text."""

        if isinstance(value, str):
            print(value, file=self.out)
            return
        print(json.dumps(value, indent=2, ensure_ascii=False), file=self.out)

    def info(self, line: str) -> None:
        """Diagnostic line, shown only with ``--verbose``."""

        if self.verbose:
            print(line, file=self.err)

    def warning(self, text: str) -> None:
        print(f"warning: {text}", file=self.err)

    def problems(self, entries: Sequence[str]) -> None:
        for entry in entries:
            print(entry, file=self.err)


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
