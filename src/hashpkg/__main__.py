"""Module entrypoint for ``python -m hashpkg``."""

from __future__ import annotations

from hashpkg.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
