"""Shared fixtures: in-memory object store, fake clock, app client."""

import os

os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from vibelink.auth.rate_limit import get_rate_limiter
from vibelink.main import app
from vibelink.services.projects import ProjectRepository
from vibelink.services.rate_limiter import RateLimiter
from vibelink.services.uploads import UploadService
from vibelink.storage.factory import get_object_store
from vibelink.storage.memory import MemoryObjectStore

MIB = 1024 * 1024
HOUR_MS = 60 * 60 * 1000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_767_225_600_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakePart:
    """Stands in for an UploadFile; size may claim more than the data holds."""

    def __init__(self, data: bytes = b"", size: int | None = None) -> None:
        self.data = data
        self.size = len(data) if size is None else size
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self.data

    async def seek(self, offset: int) -> None:
        pass


class RecordingStore(MemoryObjectStore):
    """MemoryObjectStore that logs every call as (method, key)."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def head(self, key):
        self.calls.append(("head", key))
        return await super().head(key)

    async def put(self, key, body, content_type="application/octet-stream", **kwargs):
        self.calls.append(("put", key))
        return await super().put(key, body, content_type, **kwargs)

    def writes(self) -> list[str]:
        return [key for method, key in self.calls if method == "put"]


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(store, clock):
    return RateLimiter(store, quota_bytes=100 * MIB, window_ms=HOUR_MS, clock=clock)


@pytest.fixture
def repository(store):
    return ProjectRepository(store)


@pytest.fixture
def upload_service(repository, rate_limiter):
    return UploadService(repository, rate_limiter, max_upload_bytes=100 * MIB)


@pytest.fixture
def client(store, rate_limiter):
    """TestClient wired to the in-memory store and fake clock."""
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
