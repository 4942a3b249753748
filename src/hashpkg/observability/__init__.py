"""Public observability primitives: structured logging and install progress."""

from hashpkg.observability.logging import (
    LoggingHandle,
    configure_structlog,
    correlation_scope,
    get_correlation_context,
    redact,
    setup_logging,
    shutdown_logging,
)
from hashpkg.observability.progress import EntryStatus, ProgressMeter

__all__ = [
    "EntryStatus",
    "LoggingHandle",
    "ProgressMeter",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "redact",
    "setup_logging",
    "shutdown_logging",
]
