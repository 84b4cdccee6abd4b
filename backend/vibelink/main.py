"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify the object store backend is reachable.
  • On shutdown: dispose the database engine cleanly.

Routers:
  • /upload — create or update a project
  • /{projectId}/download | /metadata | /preview.png — public reads
  • /health — shallow liveness probe

Any unhandled error (object store failures included) is logged and
collapsed into a generic 500 with no detail.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy import text

from vibelink.core.config import settings
from vibelink.core.cors import CORS_HEADERS, install_cors
from vibelink.routers.projects import router as projects_router
from vibelink.routers.upload import router as upload_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    logger.info("Object store backend: %s", settings.STORAGE_BACKEND)

    if settings.STORAGE_BACKEND != "postgres":
        yield
        return

    from vibelink.core.database import engine

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        "Share small projects by link — upload a zipped project, "
        "fetch it anywhere."
    ),
    lifespan=lifespan,
)

install_cors(app)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> PlainTextResponse:
    """Last-resort handler — never leak storage or stack details."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return PlainTextResponse(
        "Internal server error",
        status_code=500,
        headers=CORS_HEADERS,
    )


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}


# Mount routers
app.include_router(upload_router)
app.include_router(projects_router)
