"""
Object store contract consumed by the project repository and rate limiter.

A store maps flat string keys to byte blobs:
    "{projectId}/vibelink.json"
    "{projectId}/project.zip"
    "_ratelimit/{clientKey}.json"

Backends:
    • PostgresObjectStore — stored_objects table (default)
    • R2ObjectStore       — Cloudflare R2 / any S3-compatible bucket
    • MemoryObjectStore   — process-local dict (tests, local dev)

Conditional writes:
    put(..., if_none_match=True)  — create only; fails if the key exists
    put(..., if_match=<version>)  — overwrite only if unchanged since read
Both raise PreconditionFailed when the condition does not hold.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    """Raised when the backing store fails to read or write.

    The message is for internal logging only — HTTP clients always
    receive a generic 500.
    """


class PreconditionFailed(StorageError):
    """Raised when a conditional write does not match the stored state."""


@dataclass(frozen=True, slots=True)
class BlobInfo:
    """Metadata about a stored object, without its body."""

    key: str
    size: int
    content_type: str
    version: str


@dataclass(frozen=True, slots=True)
class Blob:
    """A stored object together with its body."""

    info: BlobInfo
    body: bytes

    @property
    def key(self) -> str:
        return self.info.key

    @property
    def version(self) -> str:
        return self.info.version

    @property
    def content_type(self) -> str:
        return self.info.content_type

    def json(self) -> Any:
        """Decode the body as UTF-8 JSON."""
        return json.loads(self.body.decode("utf-8"))

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the body in fixed-size chunks for streaming responses."""
        view = memoryview(self.body)
        for start in range(0, len(view), chunk_size):
            yield bytes(view[start:start + chunk_size])


class ObjectStore(Protocol):
    """Key/value blob store. All methods may raise StorageError."""

    async def get(self, key: str) -> Blob | None:
        """Return the object, or None if the key does not exist."""
        ...

    async def head(self, key: str) -> BlobInfo | None:
        """Return object metadata, or None if the key does not exist."""
        ...

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
    ) -> str:
        """Store the body under key and return the new version tag."""
        ...

    async def delete(self, key: str) -> None:
        """Remove the key. Missing keys are ignored."""
        ...


def dump_json(data: Any) -> bytes:
    """Serialize a JSON document the way every store key is written."""
    return json.dumps(data, ensure_ascii=False).encode("utf-8")
