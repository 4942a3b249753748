"""Thread-safe install progress counters shared by fetch workers and the hook phase."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

COUNTER_TODO: Final[str] = "todo"
COUNTER_FETCHED: Final[str] = "fetched"
COUNTER_FAILED: Final[str] = "failed"
COUNTER_RETRIES: Final[str] = "retries"
COUNTER_HOOKS_RUN: Final[str] = "hooks_run"
COUNTER_ALREADY_PRESENT: Final[str] = "already_present"


class EntryStatus(StrEnum):
    QUEUED = "queued"
    WORKING = "working"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class _EntryState:
    label: str
    phase: str
    status: EntryStatus = EntryStatus.QUEUED
    detail: str = ""

    def as_dict(self) -> dict[str, JSONValue]:
        return {
            "label": self.label,
            "phase": self.phase,
            "status": self.status.value,
            "detail": self.detail,
        }


class ProgressMeter:
    """Counters and per-package state for one install operation."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._created_at = datetime.now(tz=UTC)
        self._counters: dict[str, int] = {}
        self._entries: dict[str, _EntryState] = {}

    def inc(self, name: str, amount: int = 1) -> None:
        """Increment counter ``name`` by ``amount`` (>= 0)."""

        if amount < 0:
            raise ValueError("counter increment amount must be >= 0")
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def add_todo(self, amount: int) -> None:
        self.inc(COUNTER_TODO, amount)

    def start(self, key: str, *, label: str, phase: str) -> None:
        with self._lock:
            self._entries[key] = _EntryState(label=label, phase=phase, status=EntryStatus.WORKING)

    def finish(self, key: str, *, detail: str = "") -> None:
        self._set_status(key, EntryStatus.DONE, detail)

    def fail(self, key: str, *, detail: str) -> None:
        self._set_status(key, EntryStatus.FAILED, detail)
        self.inc(COUNTER_FAILED)

    def status(self, key: str) -> EntryStatus | None:
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else entry.status

    def snapshot(self) -> dict[str, JSONValue]:
        """Return deterministic snapshot with stable key ordering."""

        with self._lock:
            counters = dict(sorted(self._counters.items()))
            entries = {key: self._entries[key].as_dict() for key in sorted(self._entries)}
            created_at = self._created_at

        now = datetime.now(tz=UTC)
        return {
            "metadata": {
                "created_at": created_at.isoformat(timespec="seconds").replace("+00:00", "Z"),
                "snapshot_at": now.isoformat(timespec="seconds").replace("+00:00", "Z"),
                "elapsed_seconds": max(0.0, (now - created_at).total_seconds()),
            },
            "counters": dict(counters),
            "entries": dict(entries),
        }

    def to_json(self) -> str:
        return json.dumps(self.snapshot(), sort_keys=True, separators=(",", ":"))

    def _set_status(self, key: str, status: EntryStatus, detail: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _EntryState(label=key, phase="")
                self._entries[key] = entry
            entry.status = status
            entry.detail = detail


__all__ = [
    "COUNTER_ALREADY_PRESENT",
    "COUNTER_FAILED",
    "COUNTER_FETCHED",
    "COUNTER_HOOKS_RUN",
    "COUNTER_RETRIES",
    "COUNTER_TODO",
    "EntryStatus",
    "ProgressMeter",
]
