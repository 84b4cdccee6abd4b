"""
Dev bootstrap script — seed one demo project for local development.

Usage:
    python -m scripts.bootstrap_dev

This will:
  1. Build the object store configured by STORAGE_BACKEND
  2. Create a project "Dev Project" with a tiny archive
  3. Print the project id and the raw author token ONCE (it is never stored)

The raw token is shown exactly once — copy it immediately.
"""

import asyncio
import io
import zipfile

from vibelink.core.config import settings
from vibelink.schemas.project import ProjectMetadata
from vibelink.services.projects import ProjectRepository, UploadRequest
from vibelink.storage.factory import build_object_store


def _demo_archive() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("README.md", "# Dev Project\n\nSeeded by bootstrap_dev.\n")
    return buffer.getvalue()


async def main() -> None:
    store = build_object_store(settings)
    repository = ProjectRepository.from_settings(store)

    outcome = await repository.create_or_update(
        UploadRequest(
            metadata=ProjectMetadata(
                name="Dev Project",
                description="Seed project for local development",
                technologies=["Markdown"],
            ),
            archive=_demo_archive(),
        )
    )

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Backend:      {settings.STORAGE_BACKEND}")
    print(f"  Project ID:   {outcome.project_id}")
    print(f"  URL:          {settings.PUBLIC_BASE_URL.rstrip('/')}/{outcome.project_id}")
    print()
    print(f"  Author token: {outcome.author_token}")
    print()
    print("  ⚠  Copy this token now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    if settings.STORAGE_BACKEND == "postgres":
        from vibelink.core.database import engine

        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
