"""IPFS HTTP API adapter for the content store interface.

Speaks the ``/api/v0`` RPC surface of a local IPFS daemon through ``httpx``.
All calls are blocking; the fetch scheduler runs them in worker threads.
"""

from __future__ import annotations

import io
import json
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import httpx
import structlog

from hashpkg.storage.base import InvalidHashError, Link, ObjectNotFoundError, StorageError
from hashpkg.utils.fs import remove_tree

if TYPE_CHECKING:
    from typing import BinaryIO

DEFAULT_API_URL: Final[str] = "http://127.0.0.1:5001"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0

logger = structlog.get_logger(__name__)


class IpfsHttpStore:
    """Content store backed by an IPFS daemon's HTTP RPC API."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> IpfsHttpStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, ref: str, dest: Path) -> None:
        response = self._post("get", params=[("arg", ref), ("archive", "true")], ref=ref)
        dest.parent.mkdir(parents=True, exist_ok=True)
        extract_root = Path(tempfile.mkdtemp(prefix=f".{dest.name}.", dir=dest.parent))
        try:
            try:
                with tarfile.open(fileobj=io.BytesIO(response.content), mode="r:*") as archive:
                    archive.extractall(extract_root, filter="data")
            except (tarfile.TarError, OSError) as exc:
                raise StorageError(f"unable to unpack object {ref}: {exc}") from exc
            extracted = extract_root / ref
            if not extracted.exists():
                raise ObjectNotFoundError(ref)
            extracted.rename(dest)
        finally:
            remove_tree(extract_root)
        logger.debug("ipfs_object_fetched", ref=ref, dest=str(dest))

    def add(self, reader: BinaryIO) -> str:
        response = self._post(
            "add",
            params=[("pin", "true"), ("quieter", "true")],
            files={"file": ("file", reader, "application/octet-stream")},
        )
        lines = [line for line in response.text.splitlines() if line.strip()]
        if not lines:
            raise StorageError("ipfs add returned an empty response")
        return _require_hash(_decode(lines[-1]), "add")

    def new_empty_dir(self) -> str:
        response = self._post("object/new", params=[("arg", "unixfs-dir")])
        return _require_hash(_decode(response.text), "object/new")

    def patch_link(self, obj: str, name: str, child: str) -> str:
        response = self._post(
            "object/patch/add-link",
            params=[("arg", obj), ("arg", name), ("arg", child)],
            ref=obj,
        )
        return _require_hash(_decode(response.text), "object/patch/add-link")

    def list(self, path: str) -> list[Link]:
        response = self._post("ls", params=[("arg", path)], ref=path)
        payload = _decode(response.text)
        objects = payload.get("Objects") or []
        if not objects:
            return []
        links = objects[0].get("Links") or []
        return [Link(name=str(item["Name"]), hash=str(item["Hash"])) for item in links]

    def _post(
        self,
        endpoint: str,
        *,
        params: list[tuple[str, str]],
        ref: str | None = None,
        files: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.api_url}/api/v0/{endpoint}"
        try:
            response = self._client.post(url, params=params, files=files)
        except httpx.HTTPError as exc:
            raise StorageError(f"ipfs api {endpoint} request failed: {exc}") from exc
        if response.status_code >= 400:
            message = _error_message(response)
            lowered = message.lower()
            if ref is not None and "invalid" in lowered and ("cid" in lowered or "path" in lowered):
                raise InvalidHashError(ref)
            if ref is not None and "not found" in lowered:
                raise ObjectNotFoundError(ref)
            raise StorageError(f"ipfs api {endpoint} failed ({response.status_code}): {message}")
        return response


def _decode(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StorageError(f"ipfs api returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise StorageError("ipfs api returned a non-object payload")
    return parsed


def _require_hash(payload: dict[str, Any], endpoint: str) -> str:
    value = payload.get("Hash")
    if not isinstance(value, str) or not value:
        raise StorageError(f"ipfs api {endpoint} response has no Hash")
    return value


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(payload, dict) and isinstance(payload.get("Message"), str):
        return payload["Message"]
    return response.text.strip()


__all__ = ["DEFAULT_API_URL", "DEFAULT_TIMEOUT_SECONDS", "IpfsHttpStore"]
