"""
FastAPI dependencies for the project services.

Handlers are stateless: every request builds its repository and upload
service around the process-wide object store. Tests override
get_object_store (and optionally get_rate_limiter) to run against a
MemoryObjectStore.

Usage in routers:
    Repository = Annotated[ProjectRepository, Depends(get_project_repository)]
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from vibelink.auth.rate_limit import get_rate_limiter
from vibelink.services.projects import ProjectRepository
from vibelink.services.rate_limiter import RateLimiter
from vibelink.services.uploads import UploadService
from vibelink.storage.base import ObjectStore
from vibelink.storage.factory import get_object_store


def get_project_repository(
    store: Annotated[ObjectStore, Depends(get_object_store)],
) -> ProjectRepository:
    return ProjectRepository.from_settings(store)


def get_upload_service(
    repository: Annotated[ProjectRepository, Depends(get_project_repository)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> UploadService:
    return UploadService.from_settings(repository, rate_limiter)
