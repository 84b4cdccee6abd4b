"""
In-process object store.

Used by the test-suite and for STORAGE_BACKEND=memory in local
development. State lives for the lifetime of the instance only.
"""

from __future__ import annotations

from vibelink.storage.base import Blob, BlobInfo, PreconditionFailed


class MemoryObjectStore:
    """Dict-backed implementation of the ObjectStore protocol."""

    def __init__(self) -> None:
        self._objects: dict[str, Blob] = {}
        self._versions = 0

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def keys(self) -> list[str]:
        return sorted(self._objects)

    async def get(self, key: str) -> Blob | None:
        return self._objects.get(key)

    async def head(self, key: str) -> BlobInfo | None:
        blob = self._objects.get(key)
        return blob.info if blob is not None else None

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
    ) -> str:
        current = self._objects.get(key)
        if if_none_match and current is not None:
            raise PreconditionFailed(f"{key} already exists")
        if if_match is not None and (current is None or current.version != if_match):
            raise PreconditionFailed(f"{key} changed since version {if_match}")

        self._versions += 1
        version = str(self._versions)
        self._objects[key] = Blob(
            info=BlobInfo(
                key=key,
                size=len(body),
                content_type=content_type,
                version=version,
            ),
            body=bytes(body),
        )
        return version

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)
