"""Logging for hashpkg commands.

Modules log through ``structlog.get_logger(__name__)``. ``configure_structlog``
hands those events to the stdlib ``hashpkg`` logger, and ``setup_logging``
renders them, together with plain stdlib records, as one JSON object per line
in ``<log_dir>/<run_id>/hashpkg.jsonl``. Rendering happens on the calling
thread; a queue listener does the file I/O so fetch workers never wait on disk.
"""

from __future__ import annotations

import logging
import logging.handlers
import queue
import re
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

LOGGER_NAME: Final[str] = "hashpkg"
LOG_FILENAME: Final[str] = "hashpkg.jsonl"
REDACTED: Final[str] = "***REDACTED***"

CORRELATION_KEYS: Final[frozenset[str]] = frozenset({"run_id", "command", "root_package"})

_SECRET_KEY = re.compile(
    r"(?i)secret|token|password|passphrase|api_?key|authorization|credential|cookie"
)
_SECRET_TEXT: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b"
            r"\s*([:=])\s*[^\s,;]+"
        ),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"(?i)(https?://)[^/\s:@]+:[^/\s@]+@"), rf"\1{REDACTED}@"),
)

_active_lock = threading.Lock()
_active: LoggingHandle | None = None


@dataclass(slots=True)
class LoggingHandle:
    """The handlers one ``setup_logging`` call attached, and where they write."""

    logger: logging.Logger
    log_path: Path
    queue_handler: logging.handlers.QueueHandler
    listener: logging.handlers.QueueListener
    sinks: tuple[logging.Handler, ...]

    def close(self) -> None:
        # Stopping the listener drains every record already queued.
        self.listener.stop()
        self.logger.removeHandler(self.queue_handler)
        for sink in self.sinks:
            sink.close()


def _common_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog() -> None:
    """Route ``structlog`` events into stdlib logging for ``setup_logging`` to render."""

    structlog.configure(
        processors=[
            *_common_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def redact(value: Any, key: str | None = None) -> Any:
    """Mask values under secret-looking keys and credentials embedded in text."""

    if key is not None and _SECRET_KEY.search(key):
        return REDACTED
    if isinstance(value, str):
        for pattern, replacement in _SECRET_TEXT:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, Mapping):
        return {name: redact(item, str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


def redact_event(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    return {key: redact(value, key) for key, value in event_dict.items()}


def json_formatter(*, run_id: str, redact_secrets: bool = True) -> logging.Formatter:
    """Formatter that renders structlog and stdlib records as sorted JSON lines."""

    def add_run_id(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("run_id", run_id)
        return event_dict

    processors: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        add_run_id,
        structlog.processors.dict_tracebacks,
    ]
    if redact_secrets:
        processors.append(redact_event)
    processors += [
        structlog.processors.EventRenamer("message"),
        structlog.processors.JSONRenderer(sort_keys=True, default=str),
    ]
    return structlog.stdlib.ProcessorFormatter(
        processors=processors,
        foreign_pre_chain=[*_common_processors(), structlog.stdlib.ExtraAdder()],
    )


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = LOGGER_NAME,
) -> LoggingHandle:
    """Attach JSON-lines logging for one command, replacing any earlier setup.

    ``observability_config`` is the ``[observability]`` config section:
    ``log_level``, ``log_dir``, ``log_to_console`` and ``redact_secrets``.
    """

    cfg = dict(observability_config or {})
    if not run_id.strip():
        raise ValueError("run_id must not be empty")
    level = _parse_level(cfg.get("log_level", "INFO"))
    base_dir = Path(str(log_dir if log_dir is not None else cfg.get("log_dir", "logs")))

    shutdown_logging()
    configure_structlog()

    log_path = base_dir / run_id / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if cfg.get("log_to_console", False):
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)

    records: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(records)
    queue_handler.setLevel(level)
    queue_handler.setFormatter(
        json_formatter(run_id=run_id, redact_secrets=bool(cfg.get("redact_secrets", True)))
    )
    listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(queue_handler)
    listener.start()

    handle = LoggingHandle(logger, log_path, queue_handler, listener, tuple(sinks))
    global _active
    with _active_lock:
        _active = handle
    return handle


def shutdown_logging() -> None:
    """Flush and detach the active ``setup_logging`` handlers, if any."""

    global _active
    with _active_lock:
        handle, _active = _active, None
    if handle is not None:
        handle.close()


def get_correlation_context() -> dict[str, str]:
    return {
        key: str(value)
        for key, value in structlog.contextvars.get_contextvars().items()
        if key in CORRELATION_KEYS
    }


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields to every event logged in scope; ``None`` unbinds one."""

    unknown = sorted(set(fields) - CORRELATION_KEYS)
    if unknown:
        raise ValueError(f"unsupported correlation key(s): {', '.join(unknown)}")

    previous = structlog.contextvars.get_contextvars()
    state = dict(previous)
    for key, value in fields.items():
        if value is None or not value.strip():
            state.pop(key, None)
        else:
            state[key] = value.strip()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**state)
    try:
        yield
    finally:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**previous)


def _parse_level(value: object) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return level


__all__ = [
    "CORRELATION_KEYS",
    "LOGGER_NAME",
    "LoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "json_formatter",
    "redact",
    "redact_event",
    "setup_logging",
    "shutdown_logging",
]
