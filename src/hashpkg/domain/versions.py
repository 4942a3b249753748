"""Semantic version parsing, ordering and bumping for manifest ``version`` fields."""

from __future__ import annotations

from typing import Final

import semver

BUMP_FIELDS: Final[tuple[str, ...]] = ("major", "minor", "patch")


class VersionError(ValueError):
    """Raised when a version string or bump request cannot be applied."""


def parse_version(raw: str) -> semver.Version | None:
    """Parse ``raw`` as semver; ``None`` when it is empty or not valid semver."""

    if not raw:
        return None
    try:
        return semver.Version.parse(raw)
    except ValueError:
        return None


def version_sort_key(raw: str) -> tuple[int, semver.Version | None]:
    # Unparseable and empty versions sort below every real version.
    parsed = parse_version(raw)
    return (0, None) if parsed is None else (1, parsed)


def next_version(current: str, request: str) -> str:
    """Resolve a ``version`` command argument against ``current``.

    A full semver string replaces the version outright. ``major``, ``minor``
    and ``patch`` bump the matching field of ``current`` and reset the lower
    ones.
    """

    if parse_version(request) is not None:
        return request
    if request not in BUMP_FIELDS:
        raise VersionError(f"argument was not a semver field: {request!r}")
    parsed = parse_version(current)
    if parsed is None:
        raise VersionError(f"current version {current!r} is not valid semver")
    bumped = {
        "major": parsed.bump_major,
        "minor": parsed.bump_minor,
        "patch": parsed.bump_patch,
    }[request]()
    return str(bumped)


__all__ = [
    "BUMP_FIELDS",
    "VersionError",
    "next_version",
    "parse_version",
    "version_sort_key",
]
