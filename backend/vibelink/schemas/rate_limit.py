"""
Pydantic v2 schemas for the per-client upload usage record.

Stored as _ratelimit/{clientKey}.json:
    {"uploads": [{"timestamp": 1767225600000, "bytes": 62914560}, ...]}

Timestamps are epoch milliseconds.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class UploadEntry(BaseModel):
    """One successful upload counted against the client's quota."""

    timestamp: int = Field(..., ge=0)
    bytes: int = Field(..., ge=0)


class RateLimitRecord(BaseModel):
    """All uploads recorded for one client key (expired ones pruned lazily)."""

    uploads: list[UploadEntry] = Field(default_factory=list)

    def in_window(self, window_start_ms: int) -> list[UploadEntry]:
        """Entries strictly newer than window_start_ms."""
        return [u for u in self.uploads if u.timestamp > window_start_ms]
