"""
Postgres-backed object store.

Every blob is one row in stored_objects, keyed by its full object key.
Each operation opens its own short-lived session and commits on its own;
there are no multi-key transactions.

Conditional writes map onto single statements, so they are atomic:
  • if_none_match → INSERT … ON CONFLICT DO NOTHING RETURNING version
  • if_match      → UPDATE … WHERE version = :v RETURNING version
  • plain put     → INSERT … ON CONFLICT DO UPDATE (version + 1)
An empty RETURNING means the precondition did not hold.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import func

from vibelink.models.stored_object import StoredObject
from vibelink.storage.base import Blob, BlobInfo, PreconditionFailed, StorageError

logger = logging.getLogger(__name__)


def _info(row: StoredObject) -> BlobInfo:
    return BlobInfo(
        key=row.key,
        size=row.size,
        content_type=row.content_type,
        version=str(row.version),
    )


class PostgresObjectStore:
    """ObjectStore implementation over the stored_objects table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Blob | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(StoredObject).where(StoredObject.key == key)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"get {key} failed") from exc

        if row is None:
            return None
        return Blob(info=_info(row), body=row.body)

    async def head(self, key: str) -> BlobInfo | None:
        stmt = select(
            StoredObject.key,
            StoredObject.size,
            StoredObject.content_type,
            StoredObject.version,
        ).where(StoredObject.key == key)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"head {key} failed") from exc

        if row is None:
            return None
        return BlobInfo(
            key=row.key,
            size=row.size,
            content_type=row.content_type,
            version=str(row.version),
        )

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
    ) -> str:
        values = {
            "key": key,
            "body": body,
            "content_type": content_type,
            "size": len(body),
        }

        if if_none_match:
            stmt = (
                pg_insert(StoredObject)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["key"])
                .returning(StoredObject.version)
            )
        elif if_match is not None:
            stmt = (
                update(StoredObject)
                .where(
                    StoredObject.key == key,
                    StoredObject.version == int(if_match),
                )
                .values(
                    body=body,
                    content_type=content_type,
                    size=len(body),
                    version=StoredObject.version + 1,
                    updated_at=func.now(),
                )
                .returning(StoredObject.version)
            )
        else:
            insert_stmt = pg_insert(StoredObject).values(**values)
            stmt = insert_stmt.on_conflict_do_update(
                index_elements=["key"],
                set_={
                    "body": insert_stmt.excluded.body,
                    "content_type": insert_stmt.excluded.content_type,
                    "size": insert_stmt.excluded.size,
                    "version": StoredObject.version + 1,
                    "updated_at": func.now(),
                },
            ).returning(StoredObject.version)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                version = result.scalar_one_or_none()
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"put {key} failed") from exc

        if version is None:
            raise PreconditionFailed(f"conditional put on {key} did not apply")
        return str(version)

    async def delete(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(StoredObject).where(StoredObject.key == key)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"delete {key} failed") from exc
