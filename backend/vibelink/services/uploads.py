"""
Upload orchestration — composes validation, quota and persistence.

Fixed, fail-fast order:
  1. metadata + zip present             → MissingFields      (400)
  2. client project id well-formed      → InvalidProjectId   (400)
  3. metadata is a project document     → InvalidMetadata    (400)
  4. archive within MAX_UPLOAD_BYTES    → PayloadTooLarge    (413)
  5. archive + preview within quota     → RateLimitExceeded  (429)
  6. repository create_or_update        → 403 / 404 / 500
  7. record usage (only after persist succeeded)

Steps 1-5 touch no storage except the quota read in step 5, so an
oversized archive is rejected before anything is read or written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from vibelink.auth.errors import InvalidMetadata, InvalidProjectId, MissingFields, PayloadTooLarge
from vibelink.auth.hashing import is_valid_project_id
from vibelink.core.config import Settings, settings
from vibelink.schemas.project import ProjectMetadata
from vibelink.services.projects import ProjectRepository, UploadOutcome, UploadRequest
from vibelink.services.rate_limiter import RateLimiter, RateLimitExceeded

logger = logging.getLogger(__name__)

TOKEN_WARNING = (
    "IMPORTANT: Save your author token! You need it to update this project. "
    "It cannot be recovered."
)

# Written by the repository on every upload; client values are ignored.
SERVER_OWNED_FIELDS = ("projectId", "project_id", "createdAt", "created_at")


class FilePart(Protocol):
    """An uploaded file part (Starlette's UploadFile satisfies this)."""

    size: int | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(slots=True)
class UploadForm:
    """Raw multipart fields of POST /upload, after text decoding."""

    metadata: str | None
    archive: FilePart | None
    preview: FilePart | None = None
    project_id: str | None = None
    author_token: str | None = None

    @property
    def is_update(self) -> bool:
        return bool(self.project_id and self.author_token)


def parse_metadata(raw: str) -> ProjectMetadata:
    """Parse the metadata field. Server-owned fields are discarded; the repository sets them."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidMetadata("Invalid metadata: not valid JSON.") from exc

    if not isinstance(data, dict):
        raise InvalidMetadata("Invalid metadata: expected a JSON object.")

    for key in SERVER_OWNED_FIELDS:
        data.pop(key, None)

    try:
        return ProjectMetadata.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "metadata" for err in exc.errors()
        )
        raise InvalidMetadata(f"Invalid metadata: check {fields}.") from exc


async def _part_size(part: FilePart) -> int:
    if part.size is not None:
        return part.size
    return len(await part.read())


async def _read_all(part: FilePart) -> bytes:
    # _part_size may already have consumed the stream.
    seek = getattr(part, "seek", None)
    if seek is not None:
        await seek(0)
    return await part.read()


class UploadService:
    """Handles one upload request end to end."""

    def __init__(
        self,
        repository: ProjectRepository,
        rate_limiter: RateLimiter,
        *,
        max_upload_bytes: int,
    ) -> None:
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(
        cls,
        repository: ProjectRepository,
        rate_limiter: RateLimiter,
        config: Settings = settings,
    ) -> UploadService:
        return cls(repository, rate_limiter, max_upload_bytes=config.MAX_UPLOAD_BYTES)

    async def handle(self, form: UploadForm, client_key: str) -> UploadOutcome:
        # ── 1. Required fields ──────────────────────────────
        if not form.metadata or form.archive is None:
            raise MissingFields("Missing required fields: metadata, zip")

        # ── 2. Client-supplied id (updates only) ────────────
        if form.is_update and not is_valid_project_id(form.project_id or ""):
            raise InvalidProjectId("Invalid project ID format.")

        # ── 3. Metadata document ────────────────────────────
        metadata = parse_metadata(form.metadata)

        # ── 4. Size limit ───────────────────────────────────
        archive_size = await _part_size(form.archive)
        if archive_size > self.max_upload_bytes:
            raise PayloadTooLarge(archive_size, self.max_upload_bytes)

        preview_size = await _part_size(form.preview) if form.preview is not None else 0
        total_size = archive_size + preview_size

        # ── 5. Quota ────────────────────────────────────────
        decision = await self.rate_limiter.check(client_key, total_size)
        if not decision.allowed:
            raise RateLimitExceeded(
                decision,
                self.rate_limiter.quota_bytes,
                self.rate_limiter.window_ms,
            )

        # ── 6. Persist ──────────────────────────────────────
        request = UploadRequest(
            metadata=metadata,
            archive=await _read_all(form.archive),
            preview=await _read_all(form.preview) if form.preview is not None else None,
            project_id=form.project_id,
            author_token=form.author_token,
        )
        outcome = await self.repository.create_or_update(request)

        # ── 7. Count usage ──────────────────────────────────
        await self.rate_limiter.record(client_key, total_size)

        return outcome
