"""Language subtool hooks and install-path resolution."""

from hashpkg.hooks.paths import InstallPathResolver
from hashpkg.hooks.runner import (
    HookRunner,
    SubprocessHookRunner,
    Subtool,
    SubtoolLocator,
    SubtoolStatus,
)

__all__ = [
    "HookRunner",
    "InstallPathResolver",
    "SubprocessHookRunner",
    "Subtool",
    "SubtoolLocator",
    "SubtoolStatus",
]
