"""Shared test doubles built on the local content store."""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from itertools import count
from pathlib import Path
from typing import TYPE_CHECKING

from hashpkg.constants import MANIFEST_FILENAME
from hashpkg.domain.manifest import save_package
from hashpkg.domain.models import Dependency, Package
from hashpkg.errors import HookFailedError
from hashpkg.publish import Publisher
from hashpkg.storage.local import LocalContentStore

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import BinaryIO

    from hashpkg.storage.base import Link


class Registry:
    """Publishes throwaway packages into a ``LocalContentStore``."""

    def __init__(self, root: Path) -> None:
        self.store = LocalContentStore(root / "objects")
        self.publisher = Publisher(self.store)
        self._work = root / "work"
        self._ids = count()
        self.refs: dict[str, str] = {}

    def publish(
        self,
        name: str,
        version: str = "1.0.0",
        deps: Iterable[str | Dependency] = (),
        *,
        language: str = "",
        subtool_required: bool = False,
        files: Mapping[str, str] | None = None,
    ) -> str:
        """Publish a package; string deps name packages published earlier."""

        package = Package(
            name=name,
            version=version,
            language=language,
            subtool_required=subtool_required,
            dependencies=tuple(self.dep(item) if isinstance(item, str) else item for item in deps),
        )
        directory = self._work / f"{name}-{next(self._ids)}"
        directory.mkdir(parents=True)
        save_package(directory / MANIFEST_FILENAME, package)
        for rel, text in (files or {}).items():
            target = directory / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        ref = self.publisher.publish(directory, name)
        self.refs[name] = ref
        return ref

    def dep(self, name: str, *, version: str | None = None) -> Dependency:
        ref = self.refs[name]
        return Dependency(name=name, hash=ref, version=version if version is not None else "1.0.0")


class InstrumentedStore:
    """Wraps a real store: counts ``get`` calls, tracks concurrency, injects failures."""

    def __init__(self, inner: LocalContentStore, *, delay: float = 0.0) -> None:
        self.inner = inner
        self.delay = delay
        self.calls: Counter[str] = Counter()
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()
        self._failures: dict[str, list[BaseException]] = {}

    def fail_next(self, ref: str, *errors: BaseException) -> None:
        with self._lock:
            self._failures.setdefault(ref, []).extend(errors)

    def get(self, ref: str, dest: Path) -> None:
        with self._lock:
            self.calls[ref] += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
            pending = self._failures.get(ref)
            failure = pending.pop(0) if pending else None
        try:
            if self.delay:
                time.sleep(self.delay)
            if failure is not None:
                # Leave partial output behind, as an interrupted download would.
                dest.mkdir(parents=True, exist_ok=True)
                (dest / "partial").write_text("x", encoding="utf-8")
                raise failure
            self.inner.get(ref, dest)
        finally:
            with self._lock:
                self.active -= 1

    def add(self, reader: BinaryIO) -> str:
        return self.inner.add(reader)

    def new_empty_dir(self) -> str:
        return self.inner.new_empty_dir()

    def patch_link(self, obj: str, name: str, child: str) -> str:
        return self.inner.patch_link(obj, name, child)

    def list(self, path: str) -> list[Link]:
        return self.inner.list(path)


@dataclass(slots=True)
class StaticRoots:
    """``InstallRoots`` with fixed local and global directories."""

    local: Path
    global_root: Path
    calls: list[tuple[str, bool]] = field(default_factory=list)

    def install_path(self, language: str, cwd: Path, global_install: bool = False) -> Path:
        self.calls.append((language, global_install))
        return self.global_root if global_install else self.local


@dataclass(slots=True)
class HookCall:
    hook: str
    language: str
    required: bool
    args: tuple[str, ...]

    @property
    def ref(self) -> str:
        """Hash directory name for post-install calls."""

        return Path(self.args[0]).name if self.args else ""


@dataclass(slots=True)
class RecordingHookRunner:
    """``HookRunner`` that records calls and fails for chosen hash directories."""

    calls: list[HookCall] = field(default_factory=list)
    fail_refs: set[str] = field(default_factory=set)
    install_paths: dict[tuple[str, bool], str] = field(default_factory=dict)

    def run_hook(self, hook: str, language: str, required: bool, *args: str) -> None:
        call = HookCall(hook, language, required, tuple(args))
        self.calls.append(call)
        if call.ref in self.fail_refs:
            raise HookFailedError(hook, language, 1)

    def capture_hook(
        self, hook: str, language: str, *args: str, cwd: Path | None = None
    ) -> str | None:
        self.calls.append(HookCall(hook, language, False, tuple(args)))
        return self.install_paths.get((language, "--global" in args))

    def refs_for(self, hook: str) -> list[str]:
        return [call.ref for call in self.calls if call.hook == hook]
