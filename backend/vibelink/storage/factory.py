"""
Object store selection.

STORAGE_BACKEND picks the implementation once per process; routers
receive it through the get_object_store dependency so tests can swap
in a MemoryObjectStore with app.dependency_overrides.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from vibelink.core.config import Settings, settings
from vibelink.storage.base import ObjectStore

logger = logging.getLogger(__name__)


def build_object_store(config: Settings) -> ObjectStore:
    """Instantiate the backend named by config.STORAGE_BACKEND."""
    if config.STORAGE_BACKEND == "memory":
        from vibelink.storage.memory import MemoryObjectStore

        logger.warning("Using in-memory object store; data is lost on restart")
        return MemoryObjectStore()

    if config.STORAGE_BACKEND == "r2":
        from vibelink.storage.r2 import R2ObjectStore

        return R2ObjectStore(
            config.R2_BUCKET,
            account_id=config.R2_ACCOUNT_ID,
            access_key_id=config.R2_ACCESS_KEY_ID,
            secret_access_key=config.R2_SECRET_ACCESS_KEY,
            endpoint_url=config.R2_ENDPOINT_URL,
        )

    from vibelink.core.database import async_session_factory
    from vibelink.storage.postgres import PostgresObjectStore

    return PostgresObjectStore(async_session_factory)


@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    """FastAPI dependency — the process-wide object store."""
    return build_object_store(settings)
