"""
Pydantic v2 schemas for project documents.

Separation:
  • ProjectMetadata — public vibelink.json (what clients send and read).
  • ProjectAuth     — private _auth.json (never served).
  • UploadResponse  — what POST /upload returns.

Stored documents keep the camelCase keys clients already use
(projectId, forkedFrom, createdAt); Python code uses snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PreviewDescriptor(BaseModel):
    """
    How the project page should preview this project.

    Known types are image, mockup and auto; others are stored as given.
    """

    model_config = ConfigDict(extra="allow")

    type: str | None = Field(default=None, examples=["image", "mockup", "auto"])
    src: str | None = Field(default=None, examples=["./vibelink-preview.png"])
    layout: str | None = None
    components: list[str] | None = None


class ProjectMetadata(BaseModel):
    """
    Public metadata stored as {projectId}/vibelink.json.

    extra="allow" keeps any additional keys the client supplied —
    the document is echoed back verbatim on GET /{projectId}/metadata.

    forkedFrom is advisory only: it may point at a project that does
    not exist, and nothing checks it.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., examples=["Weather Dashboard"])
    description: str = Field(
        ...,
        examples=["A real-time weather dashboard with beautiful visualizations"],
    )
    author: str | None = Field(default=None, examples=["alexstein"])
    project_id: str | None = Field(default=None, alias="projectId")
    forked_from: str | None = Field(default=None, alias="forkedFrom")
    preview: PreviewDescriptor | None = None
    created_at: str | None = Field(
        default=None,
        alias="createdAt",
        description="ISO-8601 timestamp of first upload. Set by the server.",
    )
    technologies: list[str] | None = Field(
        default=None,
        examples=[["React", "TypeScript", "Tailwind CSS"]],
    )

    def to_document(self) -> dict:
        """Serialize for storage (camelCase keys, unset optionals dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ProjectAuth(BaseModel):
    """Private authorization record stored as {projectId}/_auth.json."""

    model_config = ConfigDict(populate_by_name=True)

    token_hash: str = Field(..., alias="tokenHash")
    created_at: str = Field(..., alias="createdAt")
    last_updated: str = Field(..., alias="lastUpdated")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class UploadResponse(BaseModel):
    """
    Result of POST /upload.

    author_token and message are present only on first creation —
    the raw token is never retrievable again.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    url: str
    project_id: str = Field(..., alias="projectId")
    is_update: bool = Field(..., alias="isUpdate")
    author_token: str | None = Field(default=None, alias="authorToken")
    message: str | None = None
