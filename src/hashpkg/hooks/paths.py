"""Install-root resolution per language, cached for one command invocation."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from hashpkg.constants import DEFAULT_LOCAL_INSTALL_DIR, HOOK_INSTALL_PATH

if TYPE_CHECKING:
    from hashpkg.hooks.runner import HookRunner

logger = structlog.get_logger(__name__)


class InstallPathResolver:
    """Asks a language subtool where its packages live, else falls back to defaults.

    Local installs fall back to ``<cwd>/<local_dir>``; global installs to
    ``global_root``. Answers are cached per ``(language, cwd, global)`` for the
    lifetime of the resolver.
    """

    def __init__(
        self,
        hook_runner: HookRunner,
        *,
        global_root: Path,
        local_dir: str = DEFAULT_LOCAL_INSTALL_DIR,
    ) -> None:
        self._hooks = hook_runner
        self._global_root = Path(global_root)
        self._local_dir = local_dir
        self._cache: dict[tuple[str, Path, bool], Path] = {}

    @classmethod
    def from_config(
        cls, hook_runner: HookRunner, config: Mapping[str, object]
    ) -> InstallPathResolver:
        install = config.get("install")
        if not isinstance(install, Mapping):
            raise ValueError("config has no [install] section")
        return cls(
            hook_runner,
            global_root=Path(str(install["global_root"])).expanduser(),
            local_dir=str(install["local_dir"]),
        )

    def install_path(self, language: str, cwd: Path, global_install: bool = False) -> Path:
        key = (language, Path(cwd).resolve(), global_install)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        resolved = self._ask_subtool(language, key[1], global_install)
        if resolved is None:
            resolved = self._global_root if global_install else key[1] / self._local_dir
        self._cache[key] = resolved
        logger.debug(
            "install_path_resolved",
            language=language,
            global_install=global_install,
            path=str(resolved),
        )
        return resolved

    def _ask_subtool(self, language: str, cwd: Path, global_install: bool) -> Path | None:
        if not language:
            return None
        args = ("--global",) if global_install else ()
        output = self._hooks.capture_hook(HOOK_INSTALL_PATH, language, *args, cwd=cwd)
        if not output:
            return None
        path = Path(output).expanduser()
        return path if path.is_absolute() else cwd / path


__all__ = ["InstallPathResolver"]
