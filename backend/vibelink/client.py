"""
HTTP client for a Vibelink server.

push: zip a local project (skipping dependencies, build output and
      secrets), upload it, remember the author token.
pull: download a project archive and unpack it under ~/vibelinks/.

Author tokens live in ~/.vibelink-tokens/{projectId}, one file per
project. A project whose vibelink.json carries a projectId we hold no
token for is someone else's: pushing it creates a new project with
forkedFrom pointing at the original.
"""

from __future__ import annotations

import io
import json
import logging
import os
import zipfile
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://vibelink.to"
METADATA_FILE = "vibelink.json"
PREVIEW_FILE = "vibelink-preview.png"

TOKENS_DIR = Path.home() / ".vibelink-tokens"
PROJECTS_DIR = Path.home() / "vibelinks"

EXCLUDED_DIRS = {"node_modules", ".git", "dist", "build", ".next", "__pycache__"}
EXCLUDED_FILES = {".env", ".DS_Store", "vibelink-upload.zip"}
EXCLUDED_SUFFIXES = {".pyc"}


class VibelinkClientError(Exception):
    """Raised when the server rejects a request."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


# =============================================================================
# Archives
# =============================================================================


def _is_excluded(relative: Path) -> bool:
    if any(part in EXCLUDED_DIRS for part in relative.parts[:-1]):
        return True
    return relative.name in EXCLUDED_FILES or relative.suffix in EXCLUDED_SUFFIXES


def build_archive(project_dir: Path) -> bytes:
    """Zip project_dir in memory, skipping excluded paths."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for root, dirs, files in os.walk(project_dir):
            dirs[:] = sorted(d for d in dirs if d not in EXCLUDED_DIRS)
            for name in sorted(files):
                path = Path(root) / name
                relative = path.relative_to(project_dir)
                if _is_excluded(relative):
                    continue
                zf.write(path, relative.as_posix())
    return buffer.getvalue()


def find_project_root(directory: Path) -> Path:
    """A lone top-level subdirectory is the real project root."""
    entries = [p for p in directory.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return directory


def extract_archive(data: bytes, dest: Path) -> Path:
    """Unpack an archive into dest, refusing entries that escape it."""
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for member in zf.infolist():
            target = (root / member.filename).resolve()
            if target != root and root not in target.parents:
                raise ValueError(f"Archive entry escapes destination: {member.filename}")
        zf.extractall(root)

    return find_project_root(root)


# =============================================================================
# Tokens
# =============================================================================


class TokenStore:
    """Author tokens on disk, one file per project id."""

    def __init__(self, directory: Path = TOKENS_DIR) -> None:
        self.directory = directory

    def get(self, project_id: str) -> str | None:
        path = self.directory / project_id
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def save(self, project_id: str, token: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / project_id
        path.write_text(token + "\n", encoding="utf-8")
        path.chmod(0o600)
        return path


# =============================================================================
# Client
# =============================================================================


class VibelinkClient:
    """Thin wrapper over the Vibelink HTTP API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        http: httpx.Client | None = None,
        tokens: TokenStore | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.tokens = tokens or TokenStore()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> VibelinkClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 200:
            return
        try:
            message = response.json().get("detail", response.text)
        except (ValueError, AttributeError):
            message = response.text
        raise VibelinkClientError(response.status_code, str(message))

    def metadata(self, project_id: str) -> dict[str, Any]:
        response = self._http.get(f"/{project_id}/metadata")
        self._raise_for_status(response)
        return response.json()

    def download(self, project_id: str) -> bytes:
        response = self._http.get(f"/{project_id}/download")
        self._raise_for_status(response)
        return response.content

    def upload(
        self,
        metadata: dict[str, Any],
        archive: bytes,
        *,
        preview: bytes | None = None,
        project_id: str | None = None,
        author_token: str | None = None,
    ) -> dict[str, Any]:
        files: dict[str, Any] = {
            "zip": ("project.zip", archive, "application/zip"),
        }
        if preview is not None:
            files["preview"] = ("preview.png", preview, "image/png")

        data = {"metadata": json.dumps(metadata)}
        if project_id and author_token:
            data["projectId"] = project_id
            data["authorToken"] = author_token

        response = self._http.post("/upload", data=data, files=files)
        self._raise_for_status(response)
        return response.json()

    def push(self, project_dir: Path, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Upload project_dir as a new project or an update.

        It is an update when vibelink.json names a projectId we hold a
        token for; otherwise a new project (a fork if the id is foreign).
        The server-assigned projectId is written back to vibelink.json.
        """
        metadata_path = project_dir / METADATA_FILE
        if metadata is None:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        metadata = dict(metadata)

        project_id = metadata.get("projectId")
        token = self.tokens.get(project_id) if project_id else None

        if project_id and token is None:
            logger.info("No author token for %s, uploading as a fork", project_id)
            metadata["forkedFrom"] = metadata.pop("projectId")
            project_id = None

        preview_path = project_dir / PREVIEW_FILE
        result = self.upload(
            metadata,
            build_archive(project_dir),
            preview=preview_path.read_bytes() if preview_path.is_file() else None,
            project_id=project_id,
            author_token=token,
        )

        if result.get("authorToken"):
            self.tokens.save(result["projectId"], result["authorToken"])

        metadata["projectId"] = result["projectId"]
        metadata_path.write_text(json.dumps(metadata, indent=2) + "\n", encoding="utf-8")
        return result

    def pull(self, project_id: str, dest_root: Path = PROJECTS_DIR) -> Path:
        """Download and unpack a project; returns the project root."""
        return extract_archive(self.download(project_id), dest_root / project_id)
