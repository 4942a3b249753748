"""Dependency resolution: traversal queue, concurrent fetch, and two-phase install."""

from hashpkg.resolver.fetch import FetchReport, FetchScheduler
from hashpkg.resolver.install import InstallPipeline, InstallReport
from hashpkg.resolver.queue import DependencyQueue

__all__ = [
    "DependencyQueue",
    "FetchReport",
    "FetchScheduler",
    "InstallPipeline",
    "InstallReport",
]
