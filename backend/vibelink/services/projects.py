"""
Project repository — maps a project id to its stored artifacts.

Layout under "{projectId}/":
    vibelink.json  public metadata (existence of this key == project exists)
    project.zip    archive
    preview.png    optional preview image
    _auth.json     private token digest + timestamps, never served

create_or_update() state machine:
    update attempt (projectId AND authorToken supplied)
        no _auth.json          → ProjectNotFound   (updates never create)
        digest mismatch        → InvalidAuthorToken (nothing written)
        digest match           → refresh lastUpdated, overwrite artifacts,
                                 keep original createdAt
    new-project attempt (anything else)
        mint id + token, create _auth.json with a create-only write
        (retry with a fresh id on collision), store artifacts,
        return the raw token once.

There are no multi-key transactions: concurrent authorized updates to the
same project are last-writer-wins per key.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import ValidationError

from vibelink.auth.errors import (
    InvalidAuthorToken,
    InvalidProjectId,
    ProjectIdExhausted,
    ProjectNotFound,
)
from vibelink.auth.hashing import (
    generate_project_id,
    generate_token,
    hash_token,
    is_valid_project_id,
    verify_token,
)
from vibelink.core.config import Settings, settings
from vibelink.schemas.project import ProjectAuth, ProjectMetadata
from vibelink.storage.base import Blob, ObjectStore, PreconditionFailed, StorageError, dump_json

logger = logging.getLogger(__name__)

METADATA_FILE = "vibelink.json"
ARCHIVE_FILE = "project.zip"
PREVIEW_FILE = "preview.png"
AUTH_FILE = "_auth.json"


def object_key(project_id: str, name: str) -> str:
    return f"{project_id}/{name}"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class UploadRequest:
    """A validated upload, ready for the repository."""

    metadata: ProjectMetadata
    archive: bytes
    preview: bytes | None = None
    project_id: str | None = None
    author_token: str | None = None

    @property
    def is_update(self) -> bool:
        """Updates require both a project id and an author token."""
        return bool(self.project_id and self.author_token)

    @property
    def total_bytes(self) -> int:
        return len(self.archive) + len(self.preview or b"")


@dataclass(frozen=True, slots=True)
class UploadOutcome:
    """Result of create_or_update. author_token is set only on creation."""

    project_id: str
    is_update: bool
    author_token: str | None = None


class ProjectRepository:
    """Create, update and read projects in an object store."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        id_attempts: int = 5,
        id_factory: Callable[[], str] = generate_project_id,
        now: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.store = store
        self.id_attempts = max(1, id_attempts)
        self._id_factory = id_factory
        self._now = now

    @classmethod
    def from_settings(cls, store: ObjectStore, config: Settings = settings) -> ProjectRepository:
        return cls(store, id_attempts=config.PROJECT_ID_ATTEMPTS)

    # ── Reads ───────────────────────────────────────────────

    async def exists(self, project_id: str) -> bool:
        if not is_valid_project_id(project_id):
            return False
        return await self.store.head(object_key(project_id, METADATA_FILE)) is not None

    async def read_metadata(self, project_id: str) -> dict:
        """Return the public metadata document as stored."""
        if not is_valid_project_id(project_id):
            raise ProjectNotFound(project_id)

        blob = await self.store.get(object_key(project_id, METADATA_FILE))
        if blob is None:
            raise ProjectNotFound(project_id)

        try:
            return blob.json()
        except ValueError as exc:
            raise StorageError(f"metadata for {project_id} is not valid JSON") from exc

    async def read_archive(self, project_id: str) -> Blob:
        return await self._read_artifact(
            project_id, ARCHIVE_FILE, "Project archive not found",
        )

    async def read_preview(self, project_id: str) -> Blob:
        return await self._read_artifact(
            project_id, PREVIEW_FILE, "No preview available",
        )

    async def _read_artifact(self, project_id: str, name: str, missing: str) -> Blob:
        if not await self.exists(project_id):
            raise ProjectNotFound(project_id)

        blob = await self.store.get(object_key(project_id, name))
        if blob is None:
            raise ProjectNotFound(project_id, missing)
        return blob

    # ── Writes ──────────────────────────────────────────────

    async def create_or_update(self, request: UploadRequest) -> UploadOutcome:
        if request.is_update:
            return await self._update(request)
        return await self._create(request)

    async def _create(self, request: UploadRequest) -> UploadOutcome:
        """New project — any client-supplied project id is ignored."""
        token = generate_token()
        now = self._now()
        auth = ProjectAuth(token_hash=hash_token(token), created_at=now, last_updated=now)
        auth_body = dump_json(auth.to_document())

        for attempt in range(1, self.id_attempts + 1):
            project_id = self._id_factory()
            try:
                await self.store.put(
                    object_key(project_id, AUTH_FILE),
                    auth_body,
                    "application/json",
                    if_none_match=True,
                )
                break
            except PreconditionFailed:
                logger.warning(
                    "Generated project id collided with an existing project "
                    "(attempt %d/%d)",
                    attempt, self.id_attempts,
                )
        else:
            raise ProjectIdExhausted("Could not allocate a new project id.")

        await self._write_artifacts(project_id, request, created_at=now)
        logger.info("Created project %s", project_id)

        return UploadOutcome(project_id=project_id, is_update=False, author_token=token)

    async def _update(self, request: UploadRequest) -> UploadOutcome:
        project_id = request.project_id or ""
        if not is_valid_project_id(project_id):
            raise InvalidProjectId("Invalid project ID format.")

        auth_key = object_key(project_id, AUTH_FILE)
        auth_blob = await self.store.get(auth_key)
        if auth_blob is None:
            raise ProjectNotFound(
                project_id,
                f'Project "{project_id}" not found. '
                "Cannot update a project that doesn't exist.",
            )

        try:
            auth = ProjectAuth.model_validate(auth_blob.json())
        except (ValueError, ValidationError) as exc:
            raise StorageError(f"auth record for {project_id} is unreadable") from exc

        if not verify_token(request.author_token or "", auth.token_hash):
            logger.info("Rejected update to %s: author token mismatch", project_id)
            raise InvalidAuthorToken(project_id)

        created_at = await self._existing_created_at(project_id) or auth.created_at

        auth.last_updated = self._now()
        await self.store.put(auth_key, dump_json(auth.to_document()), "application/json")

        await self._write_artifacts(project_id, request, created_at=created_at)
        logger.info("Updated project %s", project_id)

        return UploadOutcome(project_id=project_id, is_update=True)

    async def _existing_created_at(self, project_id: str) -> str | None:
        blob = await self.store.get(object_key(project_id, METADATA_FILE))
        if blob is None:
            return None
        try:
            created_at = blob.json().get("createdAt")
        except (ValueError, AttributeError):
            return None
        return created_at if isinstance(created_at, str) else None

    async def _write_artifacts(
        self,
        project_id: str,
        request: UploadRequest,
        *,
        created_at: str,
    ) -> None:
        await self.store.put(
            object_key(project_id, ARCHIVE_FILE), request.archive, "application/zip",
        )

        metadata = request.metadata.model_copy(
            update={"project_id": project_id, "created_at": created_at},
        )
        await self.store.put(
            object_key(project_id, METADATA_FILE),
            dump_json(metadata.to_document()),
            "application/json",
        )

        # An update without a preview keeps the previous one.
        if request.preview is not None:
            await self.store.put(
                object_key(project_id, PREVIEW_FILE), request.preview, "image/png",
            )
