"""
hashpkg — hashing utilities

File: src/hashpkg/utils/hashing.py
Last updated: 2026-10-19

Purpose
- Deterministic SHA-256 object ids for the local content store.

Functional requirements
- Object ids are domain-separated: the object kind is hashed ahead of the payload,
  so a blob and a tree with identical bytes never share an id.
"""

from __future__ import annotations

import hashlib
import re
from typing import BinaryIO

_FILE_READ_CHUNK_BYTES = 1024 * 1024
_SHA256_HEX_RE = re.compile(r"^[0-9a-f]{64}$")

__all__ = [
    "is_sha256_hex",
    "object_digest",
    "object_digest_stream",
]


def is_sha256_hex(value: str) -> bool:
    """Return ``True`` if ``value`` is a lowercase SHA-256 hex digest."""

    return bool(_SHA256_HEX_RE.fullmatch(value))


def object_digest(kind: str, payload: bytes) -> str:
    """Return the content id of an object of ``kind`` holding ``payload``."""

    digest = hashlib.sha256(kind.encode("ascii") + b"\0")
    digest.update(payload)
    return digest.hexdigest()


def object_digest_stream(
    kind: str,
    stream: BinaryIO,
    *,
    chunk_size: int = _FILE_READ_CHUNK_BYTES,
) -> tuple[str, bytes]:
    """Hash ``stream`` as an object of ``kind``; returns the id and the bytes read."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256(kind.encode("ascii") + b"\0")
    chunks: list[bytes] = []
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
        chunks.append(chunk)
    return digest.hexdigest(), b"".join(chunks)
