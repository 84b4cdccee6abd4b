"""Cloudflare R2 object store (any S3-compatible bucket works).

boto3 is synchronous, so every call runs in a worker thread via
asyncio.to_thread. The object ETag is used as the version tag for
conditional writes (IfNoneMatch="*" / IfMatch=<etag>).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vibelink.storage.base import Blob, BlobInfo, PreconditionFailed, StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_PRECONDITION_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", "Unknown"))


class R2ObjectStore:
    """ObjectStore implementation over a single R2 bucket."""

    def __init__(
        self,
        bucket: str,
        *,
        account_id: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint_url: str = "",
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url or f"https://{account_id}.r2.cloudflarestorage.com",
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "adaptive"},
                ),
                region_name="auto",
            )
        self._client = client

    # =========================================================================
    # Blocking helpers (run in a worker thread)
    # =========================================================================

    def _get_sync(self, key: str) -> Blob | None:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            raise StorageError(f"get {key} failed: {_error_code(e)}") from e

        body = response["Body"].read()
        return Blob(
            info=BlobInfo(
                key=key,
                size=len(body),
                content_type=response.get("ContentType") or "application/octet-stream",
                version=response.get("ETag", ""),
            ),
            body=body,
        )

    def _head_sync(self, key: str) -> BlobInfo | None:
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            raise StorageError(f"head {key} failed: {_error_code(e)}") from e

        return BlobInfo(
            key=key,
            size=response.get("ContentLength", 0),
            content_type=response.get("ContentType") or "application/octet-stream",
            version=response.get("ETag", ""),
        )

    def _put_sync(
        self,
        key: str,
        body: bytes,
        content_type: str,
        if_none_match: bool,
        if_match: str | None,
    ) -> str:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
        }
        if if_none_match:
            params["IfNoneMatch"] = "*"
        if if_match is not None:
            params["IfMatch"] = if_match

        try:
            response = self._client.put_object(**params)
        except ClientError as e:
            if _error_code(e) in _PRECONDITION_CODES:
                raise PreconditionFailed(f"conditional put on {key} did not apply") from e
            raise StorageError(f"put {key} failed: {_error_code(e)}") from e

        return response.get("ETag", "")

    def _delete_sync(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise StorageError(f"delete {key} failed: {_error_code(e)}") from e

    # =========================================================================
    # ObjectStore protocol
    # =========================================================================

    async def get(self, key: str) -> Blob | None:
        return await self._run(self._get_sync, key)

    async def head(self, key: str) -> BlobInfo | None:
        return await self._run(self._head_sync, key)

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
    ) -> str:
        return await self._run(
            self._put_sync, key, body, content_type, if_none_match, if_match,
        )

    async def delete(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def _run(self, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except BotoCoreError as exc:
            raise StorageError(f"R2 request failed: {exc}") from exc
