"""Project and upload errors raised by the service layer.

Routers translate these into HTTP responses; the messages are safe to
show to clients and never contain tokens or storage details.
"""


class UploadError(Exception):
    """Base class for rejected uploads and reads."""


class InvalidProjectId(UploadError):
    """Raised when a client-supplied project id is not URL-safe."""


class InvalidMetadata(UploadError):
    """Raised when the metadata field is not a valid project document."""


class ProjectNotFound(UploadError):
    """Raised when a project (or one of its artifacts) does not exist."""

    def __init__(self, project_id: str, message: str | None = None) -> None:
        self.project_id = project_id
        super().__init__(message or f'Project "{project_id}" not found.')


class InvalidAuthorToken(UploadError):
    """Raised when an update's author token does not match the stored digest."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(
            f'Invalid author token for project "{project_id}". '
            "Only the original author can update this project."
        )


class ProjectIdExhausted(UploadError):
    """Raised when every freshly generated project id was already taken."""


class MissingFields(UploadError):
    """Raised when a required multipart field is absent."""


class PayloadTooLarge(UploadError):
    """Raised when the archive exceeds the per-project size limit."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        mib = 1024 * 1024
        super().__init__(
            f"Project too large: {size_bytes / mib:.1f}MB exceeds the "
            f"{limit_bytes / mib:g}MB limit. "
            "Vibelink is for small vibe-coded projects. Make sure node_modules "
            "and other large directories are excluded."
        )
