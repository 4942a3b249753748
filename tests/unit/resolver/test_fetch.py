"""
hashpkg — unit tests for the concurrent fetch scheduler

File: tests/unit/resolver/test_fetch.py
Last updated: 2026-10-19

Purpose
- Validate closure completeness, deduplication, bounded parallelism, and failure handling.

What this test file should cover
- Every reachable hash fetched exactly once, for arbitrary DAGs.
- Peak in-flight fetches never exceed ``max_parallel`` for wide, deep and diamond graphs.
- First failure surfaces; in-flight fetches drain; secondaries are attached.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from hashpkg.domain.models import Package
from hashpkg.errors import PackageFetchError
from hashpkg.resolver.fetch import FailureLog, FetchScheduler
from hashpkg.storage.base import ObjectNotFoundError, StorageError
from hashpkg.store.accessor import PackageStore, hash_dir
from tests.support import InstrumentedStore, Registry


def _scheduler(
    registry: Registry, *, max_parallel: int, delay: float = 0.0, attempts: int = 1
) -> tuple[FetchScheduler, InstrumentedStore]:
    store = InstrumentedStore(registry.store, delay=delay)
    packages = PackageStore(store, fetch_attempts=attempts, sleep=lambda _: None)
    return FetchScheduler(packages, max_parallel=max_parallel), store


def _root(registry: Registry, *names: str) -> Package:
    return Package(name="root", dependencies=tuple(registry.dep(name) for name in names))


@st.composite
def _dags(draw: st.DrawFn) -> tuple[list[list[int]], list[int]]:
    size = draw(st.integers(min_value=1, max_value=7))
    edges = [
        sorted(draw(st.sets(st.integers(min_value=0, max_value=index - 1), max_size=3)))
        if index
        else []
        for index in range(size)
    ]
    roots = sorted(draw(st.sets(st.integers(min_value=0, max_value=size - 1), min_size=1)))
    return edges, roots


@settings(max_examples=25, derandomize=True, deadline=None)
@given(case=_dags(), max_parallel=st.integers(min_value=1, max_value=4))
def test_closure_fetches_each_reachable_hash_exactly_once(
    case: tuple[list[list[int]], list[int]], max_parallel: int
) -> None:
    edges, roots = case
    with tempfile.TemporaryDirectory() as tmp:
        registry = Registry(Path(tmp) / "registry")
        for index, children in enumerate(edges):
            registry.publish(f"n{index}", deps=[f"n{child}" for child in children])
        scheduler, store = _scheduler(registry, max_parallel=max_parallel)
        location = Path(tmp) / "vendor"

        report = scheduler.fetch_closure(_root(registry, *(f"n{r}" for r in roots)), location)

        reachable: set[int] = set()
        stack = list(roots)
        while stack:
            node = stack.pop()
            if node not in reachable:
                reachable.add(node)
                stack.extend(edges[node])
        expected = {registry.refs[f"n{node}"] for node in reachable}
        assert set(report.fetched) == expected
        assert len(report.fetched) == len(expected)
        assert all(store.calls[ref] == 1 for ref in expected)
        assert all(hash_dir(location, ref).is_dir() for ref in expected)
        assert report.peak_active <= max_parallel


@pytest.mark.parametrize("shape", ["wide", "deep", "diamond"])
def test_peak_parallelism_is_bounded(registry: Registry, tmp_path: Path, shape: str) -> None:
    if shape == "wide":
        names = [f"leaf{i}" for i in range(12)]
        for name in names:
            registry.publish(name)
        root = _root(registry, *names)
    elif shape == "deep":
        previous: list[str] = []
        for i in range(8):
            registry.publish(f"level{i}", deps=previous)
            previous = [f"level{i}"]
        root = _root(registry, "level7")
    else:
        registry.publish("base")
        mids = [f"mid{i}" for i in range(6)]
        for name in mids:
            registry.publish(name, deps=["base"])
        registry.publish("top", deps=mids)
        root = _root(registry, "top", *mids)

    scheduler, store = _scheduler(registry, max_parallel=3, delay=0.02)
    report = scheduler.fetch_closure(root, tmp_path / "vendor")

    assert report.peak_active <= 3
    assert store.peak <= 3
    assert sum(store.calls.values()) == len(report.fetched)
    if shape == "wide":
        assert store.peak == 3


def test_second_run_finds_everything_present(registry: Registry, tmp_path: Path) -> None:
    registry.publish("c")
    registry.publish("b", deps=["c"])
    scheduler, store = _scheduler(registry, max_parallel=2)
    root = _root(registry, "b")

    scheduler.fetch_closure(root, tmp_path / "vendor")
    again = scheduler.fetch_closure(root, tmp_path / "vendor")

    assert len(again.fetched) == 2
    assert sum(store.calls.values()) == 2


def test_first_failure_is_raised_after_in_flight_fetches_drain(
    registry: Registry, tmp_path: Path
) -> None:
    for name in ("a", "b", "c", "d"):
        registry.publish(name)
    scheduler, store = _scheduler(registry, max_parallel=4, delay=0.02)
    store.fail_next(registry.refs["b"], ObjectNotFoundError(registry.refs["b"]))
    location = tmp_path / "vendor"

    with pytest.raises(PackageFetchError) as excinfo:
        scheduler.fetch_closure(_root(registry, "a", "b", "c", "d"), location)

    assert excinfo.value.ref == registry.refs["b"]
    assert not hash_dir(location, registry.refs["b"]).exists()
    # Siblings already in flight were allowed to finish and stay installed.
    for name in ("a", "c", "d"):
        assert hash_dir(location, registry.refs[name]).is_dir()
    assert not list(location.rglob("*.part"))


def test_failure_stops_dispatch_of_new_work(registry: Registry, tmp_path: Path) -> None:
    registry.publish("leaf")
    registry.publish("broken", deps=["leaf"])
    scheduler, store = _scheduler(registry, max_parallel=1)
    store.fail_next(registry.refs["broken"], StorageError("boom"))

    with pytest.raises(PackageFetchError):
        scheduler.fetch_closure(_root(registry, "broken"), tmp_path / "vendor")

    assert store.calls[registry.refs["leaf"]] == 0


def test_failure_log_collects_secondary_errors() -> None:
    log = FailureLog()
    first = PackageFetchError("a", StorageError("first"))
    log.record("a", first)
    log.record("b", StorageError("second"))

    assert log.cancel.is_cancelled
    with pytest.raises(PackageFetchError) as excinfo:
        log.raise_if_failed()

    assert excinfo.value.ref == "a"
    assert [str(err) for err in excinfo.value.secondary_errors] == ["second"]


def test_max_parallel_must_be_positive(registry: Registry) -> None:
    with pytest.raises(ValueError):
        FetchScheduler(PackageStore(registry.store), max_parallel=0)
