"""Utility exports for filesystem, hashing, and concurrency helpers."""

from hashpkg.utils.concurrency import CancellationToken, Completion, WorkerPool
from hashpkg.utils.fs import atomic_write, remove_tree, replace_symlink, temp_directory
from hashpkg.utils.hashing import is_sha256_hex, object_digest, object_digest_stream

__all__ = [
    "CancellationToken",
    "Completion",
    "WorkerPool",
    "atomic_write",
    "is_sha256_hex",
    "object_digest",
    "object_digest_stream",
    "remove_tree",
    "replace_symlink",
    "temp_directory",
]
