"""
Project read endpoints — no auth, no quota.

GET /{projectId}/download     project.zip as an attachment
GET /{projectId}/metadata     public vibelink.json
GET /{projectId}/preview.png  preview image, if one was uploaded

Unknown or malformed project ids are 404, never 422: the id is checked
by the repository rather than by a path pattern.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from vibelink.auth.dependencies import get_project_repository
from vibelink.auth.errors import ProjectNotFound
from vibelink.core.cors import CORS_HEADERS
from vibelink.services.projects import ProjectRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Projects"])

Repository = Annotated[ProjectRepository, Depends(get_project_repository)]


def _not_found(exc: ProjectNotFound) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(exc),
    )


@router.get(
    "/{project_id}/download",
    summary="Download the project archive",
    response_class=StreamingResponse,
    responses={200: {"content": {"application/zip": {}}}},
)
async def download_project(project_id: str, repository: Repository) -> StreamingResponse:
    try:
        archive = await repository.read_archive(project_id)
    except ProjectNotFound as exc:
        raise _not_found(exc) from exc

    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{project_id}.zip"',
            "Content-Length": str(archive.info.size),
            **CORS_HEADERS,
        },
    )


@router.get(
    "/{project_id}/metadata",
    summary="Public project metadata",
)
async def get_metadata(project_id: str, repository: Repository) -> JSONResponse:
    try:
        metadata = await repository.read_metadata(project_id)
    except ProjectNotFound as exc:
        raise _not_found(exc) from exc

    return JSONResponse(content=metadata, headers=CORS_HEADERS)


@router.get(
    "/{project_id}/preview.png",
    summary="Project preview image",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
async def get_preview(project_id: str, repository: Repository) -> Response:
    try:
        preview = await repository.read_preview(project_id)
    except ProjectNotFound as exc:
        raise _not_found(exc) from exc

    return Response(
        content=preview.body,
        media_type="image/png",
        headers={"Cache-Control": "public, max-age=3600", **CORS_HEADERS},
    )
