"""Tests for the object store backends."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from vibelink.core.config import Settings
from vibelink.storage.base import Blob, BlobInfo, PreconditionFailed, StorageError
from vibelink.storage.factory import build_object_store
from vibelink.storage.memory import MemoryObjectStore
from vibelink.storage.r2 import R2ObjectStore


def client_error(code: str, operation: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestBlob:
    """Tests for the Blob helpers."""

    def test_json(self):
        blob = Blob(info=BlobInfo("k", 9, "application/json", "1"), body=b'{"a": 1}')
        assert blob.json() == {"a": 1}

    def test_iter_chunks(self):
        blob = Blob(info=BlobInfo("k", 10, "application/zip", "1"), body=b"0123456789")
        assert list(blob.iter_chunks(4)) == [b"0123", b"4567", b"89"]

    def test_iter_chunks_empty(self):
        blob = Blob(info=BlobInfo("k", 0, "application/zip", "1"), body=b"")
        assert list(blob.iter_chunks()) == []


class TestMemoryObjectStore:
    """Tests for MemoryObjectStore, including conditional writes."""

    @pytest.fixture
    def mem(self):
        return MemoryObjectStore()

    async def test_get_missing(self, mem):
        assert await mem.get("nope") is None
        assert await mem.head("nope") is None

    async def test_put_get_head(self, mem):
        version = await mem.put("a/b.json", b"{}", "application/json")

        blob = await mem.get("a/b.json")
        info = await mem.head("a/b.json")
        assert blob.body == b"{}"
        assert info == BlobInfo("a/b.json", 2, "application/json", version)

    async def test_overwrite_changes_version(self, mem):
        v1 = await mem.put("k", b"1")
        v2 = await mem.put("k", b"2")

        assert v1 != v2
        assert (await mem.get("k")).body == b"2"

    async def test_if_none_match(self, mem):
        await mem.put("k", b"1", if_none_match=True)

        with pytest.raises(PreconditionFailed):
            await mem.put("k", b"2", if_none_match=True)
        assert (await mem.get("k")).body == b"1"

    async def test_if_match(self, mem):
        v1 = await mem.put("k", b"1")
        await mem.put("k", b"2", if_match=v1)

        with pytest.raises(PreconditionFailed):
            await mem.put("k", b"3", if_match=v1)
        with pytest.raises(PreconditionFailed):
            await mem.put("missing", b"x", if_match=v1)

    async def test_delete(self, mem):
        await mem.put("k", b"1")
        await mem.delete("k")
        await mem.delete("k")

        assert "k" not in mem


class TestR2ObjectStore:
    """Tests for R2ObjectStore against a mocked boto3 client."""

    @pytest.fixture
    def s3(self):
        return MagicMock()

    @pytest.fixture
    def r2(self, s3):
        return R2ObjectStore("vibelink", client=s3)

    async def test_get(self, r2, s3):
        body = MagicMock()
        body.read.return_value = b"zip"
        s3.get_object.return_value = {"Body": body, "ContentType": "application/zip", "ETag": '"e1"'}

        blob = await r2.get("p/project.zip")

        s3.get_object.assert_called_once_with(Bucket="vibelink", Key="p/project.zip")
        assert blob.body == b"zip"
        assert blob.version == '"e1"'
        assert blob.content_type == "application/zip"

    async def test_get_missing(self, r2, s3):
        s3.get_object.side_effect = client_error("NoSuchKey", "GetObject")

        assert await r2.get("p/vibelink.json") is None

    async def test_head_missing(self, r2, s3):
        s3.head_object.side_effect = client_error("404", "HeadObject")

        assert await r2.head("p/vibelink.json") is None

    async def test_other_errors_raise_storage_error(self, r2, s3):
        s3.get_object.side_effect = client_error("AccessDenied", "GetObject")

        with pytest.raises(StorageError):
            await r2.get("p/vibelink.json")

    async def test_put_plain(self, r2, s3):
        s3.put_object.return_value = {"ETag": '"e2"'}

        version = await r2.put("p/vibelink.json", b"{}", "application/json")

        assert version == '"e2"'
        s3.put_object.assert_called_once_with(
            Bucket="vibelink", Key="p/vibelink.json", Body=b"{}", ContentType="application/json",
        )

    async def test_put_conditional_headers(self, r2, s3):
        s3.put_object.return_value = {"ETag": '"e3"'}

        await r2.put("k", b"1", if_none_match=True)
        await r2.put("k", b"2", if_match='"e3"')

        first, second = s3.put_object.call_args_list
        assert first.kwargs["IfNoneMatch"] == "*"
        assert second.kwargs["IfMatch"] == '"e3"'

    async def test_put_precondition_failed(self, r2, s3):
        s3.put_object.side_effect = client_error("PreconditionFailed")

        with pytest.raises(PreconditionFailed):
            await r2.put("k", b"1", if_none_match=True)


class TestBuildObjectStore:
    """Tests for backend selection."""

    def test_memory(self):
        store = build_object_store(Settings(STORAGE_BACKEND="memory"))
        assert isinstance(store, MemoryObjectStore)

    def test_r2(self):
        store = build_object_store(
            Settings(
                STORAGE_BACKEND="r2",
                R2_ACCOUNT_ID="acct",
                R2_ACCESS_KEY_ID="key",
                R2_SECRET_ACCESS_KEY="secret",
                R2_BUCKET="bucket",
            )
        )
        assert isinstance(store, R2ObjectStore)
        assert store.bucket == "bucket"


class FakeResult:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class FakeSession:
    """Records statements; returns a fixed scalar for every execute."""

    def __init__(self, value=None, error=None):
        self.value = value
        self.error = error
        self.statements = []
        self.committed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, stmt):
        if self.error is not None:
            raise self.error
        self.statements.append(stmt)
        return FakeResult(self.value)

    async def commit(self):
        self.committed = True


class TestPostgresObjectStore:
    """Statement shape and error mapping, without a database."""

    @staticmethod
    def sql(stmt) -> str:
        from sqlalchemy.dialects import postgresql

        return str(stmt.compile(dialect=postgresql.dialect()))

    async def test_create_only_put(self):
        from vibelink.storage.postgres import PostgresObjectStore

        session = FakeSession(value=1)
        version = await PostgresObjectStore(lambda: session).put("k", b"1", if_none_match=True)

        assert version == "1"
        assert session.committed
        assert "ON CONFLICT (key) DO NOTHING" in self.sql(session.statements[0])

    async def test_compare_and_swap_put(self):
        from vibelink.storage.postgres import PostgresObjectStore

        session = FakeSession(value=4)
        version = await PostgresObjectStore(lambda: session).put("k", b"1", if_match="3")

        assert version == "4"
        sql = self.sql(session.statements[0])
        assert sql.startswith("UPDATE stored_objects")
        assert "stored_objects.version =" in sql

    async def test_upsert_put(self):
        from vibelink.storage.postgres import PostgresObjectStore

        session = FakeSession(value=2)
        await PostgresObjectStore(lambda: session).put("k", b"1")

        assert "ON CONFLICT (key) DO UPDATE" in self.sql(session.statements[0])

    async def test_precondition_failed_when_nothing_returned(self):
        from vibelink.storage.postgres import PostgresObjectStore

        store = PostgresObjectStore(lambda: FakeSession(value=None))

        with pytest.raises(PreconditionFailed):
            await store.put("k", b"1", if_none_match=True)

    async def test_database_errors_become_storage_errors(self):
        from sqlalchemy.exc import OperationalError

        from vibelink.storage.postgres import PostgresObjectStore

        error = OperationalError("SELECT 1", {}, Exception("connection refused"))
        store = PostgresObjectStore(lambda: FakeSession(error=error))

        with pytest.raises(StorageError):
            await store.put("k", b"1")
