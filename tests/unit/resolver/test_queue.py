"""Unit tests for the deduplicating dependency queue."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from hashpkg.domain.models import Dependency, Package
from hashpkg.resolver.queue import DependencyQueue


def _dep(name: str, ref: str) -> Dependency:
    return Dependency(name=name, hash=ref)


def test_queue_is_fifo_and_drops_repeated_hashes() -> None:
    queue = DependencyQueue([_dep("a", "1"), _dep("b", "2")])

    assert queue.add(_dep("a-again", "1")) is False
    assert queue.add(_dep("c", "3")) is True
    assert len(queue) == 3
    assert [queue.dequeue().name for _ in range(3)] == ["a", "b", "c"]  # type: ignore[union-attr]
    assert queue.dequeue() is None
    assert not queue


def test_hash_stays_seen_after_dequeue() -> None:
    queue = DependencyQueue([_dep("a", "1")])
    queue.dequeue()

    assert queue.seen("1")
    assert queue.add(_dep("a", "1")) is False
    assert queue.seen_count == 1


def test_enqueue_counts_only_new_edges() -> None:
    queue = DependencyQueue([_dep("a", "1")])
    package = Package(name="p", dependencies=(_dep("a", "1"), _dep("b", "2"), _dep("b2", "2")))

    assert queue.enqueue(package) == 1
    assert len(queue) == 2


@settings(max_examples=50, derandomize=True, deadline=None)
@given(refs=st.lists(st.sampled_from("abcdefgh"), max_size=40))
def test_every_hash_is_dequeued_exactly_once(refs: list[str]) -> None:
    queue = DependencyQueue()
    for ref in refs:
        queue.add(_dep(ref, ref))

    drained: list[str] = []
    while (dependency := queue.dequeue()) is not None:
        drained.append(dependency.hash)

    assert sorted(drained) == sorted(set(refs))
    assert drained == list(dict.fromkeys(refs))
