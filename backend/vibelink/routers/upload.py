"""
Upload router — the single write path.

POST /upload (multipart/form-data)
  metadata     JSON text or file        required
  zip          project archive file     required
  preview      PNG file                 optional
  projectId    existing id              updates only
  authorToken  token from creation      updates only

  1. Reads the multipart form (metadata may arrive as a file part).
  2. Delegates validation, quota and persistence to UploadService.
  3. Maps service errors onto 400 / 403 / 404 / 413 / 429.
  4. Returns the project URL — plus the raw author token, exactly once,
     when a new project was created.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.datastructures import UploadFile

from vibelink.auth.dependencies import get_upload_service
from vibelink.auth.errors import (
    InvalidAuthorToken,
    InvalidMetadata,
    InvalidProjectId,
    MissingFields,
    PayloadTooLarge,
    ProjectIdExhausted,
    ProjectNotFound,
)
from vibelink.auth.rate_limit import get_client_key
from vibelink.core.config import settings
from vibelink.schemas.project import UploadResponse
from vibelink.services.rate_limiter import RateLimitExceeded
from vibelink.services.uploads import TOKEN_WARNING, UploadForm, UploadService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])

# Type aliases for cleaner signatures
Uploads = Annotated[UploadService, Depends(get_upload_service)]
ClientKey = Annotated[str, Depends(get_client_key)]


def _text_field(value: str | UploadFile | None) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    return None


def _file_field(value: str | UploadFile | None) -> UploadFile | None:
    return value if isinstance(value, UploadFile) else None


async def _metadata_field(value: str | UploadFile | None) -> str | None:
    """The metadata part may be a plain text field or an uploaded file."""
    if isinstance(value, UploadFile):
        return (await value.read()).decode("utf-8", errors="replace")
    return value


def project_url(project_id: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{project_id}"


@router.post(
    "/upload",
    response_model=UploadResponse,
    response_model_exclude_none=True,
    summary="Create or update a project",
    description=(
        "Uploads a project archive with its metadata. Without projectId + "
        "authorToken a new project is created and its author token is "
        "returned once. Archives are limited to 100MB; uploads are rate "
        "limited to 100MB per hour per client."
    ),
)
async def upload_project(
    request: Request,
    service: Uploads,
    client_key: ClientKey,
) -> UploadResponse:
    async with request.form() as form:
        upload = UploadForm(
            metadata=await _metadata_field(form.get("metadata")),
            archive=_file_field(form.get("zip")),
            preview=_file_field(form.get("preview")),
            project_id=_text_field(form.get("projectId")),
            author_token=_text_field(form.get("authorToken")),
        )

        try:
            outcome = await service.handle(upload, client_key)
        except (MissingFields, InvalidProjectId, InvalidMetadata) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc
        except PayloadTooLarge as exc:
            raise HTTPException(
                status_code=413,  # Content Too Large
                detail=str(exc),
            ) from exc
        except RateLimitExceeded as exc:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=str(exc),
                headers={"Retry-After": str(exc.retry_after_seconds)},
            ) from exc
        except InvalidAuthorToken as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=str(exc),
            ) from exc
        except ProjectNotFound as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(exc),
            ) from exc
        except ProjectIdExhausted:
            logger.exception("Project id allocation failed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Internal server error",
            )

    return UploadResponse(
        url=project_url(outcome.project_id),
        project_id=outcome.project_id,
        is_update=outcome.is_update,
        author_token=outcome.author_token,
        message=TOKEN_WARNING if outcome.author_token else None,
    )
