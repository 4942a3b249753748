"""Command-line surface for hashpkg."""

from hashpkg.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
