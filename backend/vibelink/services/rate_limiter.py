"""
Object-store-backed upload quota.

Each client may upload RATE_LIMIT_BYTES_PER_WINDOW bytes (100 MiB) per
sliding window (1 hour). Usage is one JSON record per client key under
_ratelimit/, holding a list of {timestamp, bytes} entries.

Design decisions:
  • Check BEFORE persist, record AFTER — a rejected or failed upload
    never consumes quota.
  • Sliding window — entries older than the window are ignored on read
    and pruned on the next write; there is no background eviction.
  • Fail open on check / fail silent on record (both configurable) —
    the upload path stays available when the usage store is not.
  • Record uses compare-and-swap on the record's version so concurrent
    recorders do not drop each other's entries. Check-then-record is
    still not atomic: two concurrent uploads can both pass against the
    same snapshot, overshooting the quota by at most one request.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import ValidationError

from vibelink.core.config import Settings, settings
from vibelink.schemas.rate_limit import RateLimitRecord, UploadEntry
from vibelink.storage.base import ObjectStore, PreconditionFailed, StorageError, dump_json

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "_ratelimit/"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def client_key_for_ip(ip: str) -> str:
    """
    Derive the rate-limit key for a client IP.

    31-polynomial rolling hash, truncated to a signed 32-bit integer,
    absolute value, base-36. This only keeps raw IPs out of storage —
    it is not collision resistant, and colliding clients share a quota.
    """
    h = 0
    for ch in ip:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return _to_base36(abs(h))


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of a quota check.

    Attributes:
        allowed:             Whether the upload may proceed.
        remaining_bytes:     Quota left in the current window (never negative).
        retry_after_minutes: When denied, minutes until the oldest counted
                             upload leaves the window. None if nothing in
                             the window can free quota (single upload larger
                             than the whole quota).
    """

    allowed: bool
    remaining_bytes: int
    retry_after_minutes: int | None = None


class RateLimitExceeded(Exception):
    """Raised when an upload would push a client over its quota."""

    def __init__(self, decision: RateLimitDecision, quota_bytes: int, window_ms: int) -> None:
        self.decision = decision
        self.quota_bytes = quota_bytes
        self.window_ms = window_ms
        # Nothing in the window will free enough quota: wait a full window.
        self.retry_after_minutes = decision.retry_after_minutes or math.ceil(window_ms / 60_000)

        mib = 1024 * 1024
        super().__init__(
            f"Rate limit exceeded. You can upload {quota_bytes / mib:g}MB "
            f"{_describe_window(window_ms)}. "
            f"You have {decision.remaining_bytes / mib:.1f}MB remaining. "
            f"Try again in {self.retry_after_minutes} minutes."
        )

    @property
    def retry_after_seconds(self) -> int:
        return self.retry_after_minutes * 60


def _describe_window(window_ms: int) -> str:
    if window_ms == 3_600_000:
        return "per hour"
    return f"per {math.ceil(window_ms / 60_000)} minutes"


class RateLimiter:
    """Sliding-window byte quota per client key."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        quota_bytes: int,
        window_ms: int,
        fail_open: bool = True,
        record_fail_silent: bool = True,
        record_attempts: int = 3,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.quota_bytes = quota_bytes
        self.window_ms = window_ms
        self.fail_open = fail_open
        self.record_fail_silent = record_fail_silent
        self.record_attempts = max(1, record_attempts)
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: ObjectStore,
        config: Settings = settings,
        clock: Callable[[], int] = _now_ms,
    ) -> RateLimiter:
        return cls(
            store,
            quota_bytes=config.RATE_LIMIT_BYTES_PER_WINDOW,
            window_ms=config.RATE_LIMIT_WINDOW_MS,
            fail_open=config.RATE_LIMIT_FAIL_OPEN,
            record_fail_silent=config.RATE_LIMIT_RECORD_FAIL_SILENT,
            record_attempts=config.RATE_LIMIT_RECORD_ATTEMPTS,
            clock=clock,
        )

    @staticmethod
    def record_key(client_key: str) -> str:
        return f"{RATE_LIMIT_PREFIX}{client_key}.json"

    async def _load(self, key: str) -> tuple[RateLimitRecord | None, str | None]:
        """Read a usage record. A corrupt record reads as empty."""
        blob = await self.store.get(key)
        if blob is None:
            return None, None

        try:
            record = RateLimitRecord.model_validate(blob.json())
        except (ValueError, ValidationError):
            logger.warning("Discarding unreadable rate limit record %s", key)
            return None, blob.version
        return record, blob.version

    async def check(self, client_key: str, upload_size: int) -> RateLimitDecision:
        """Decide whether upload_size more bytes fit in the client's window."""
        now = self._clock()
        window_start = now - self.window_ms

        try:
            record, _ = await self._load(self.record_key(client_key))
        except StorageError:
            if not self.fail_open:
                raise
            logger.warning(
                "Rate limit check failed — allowing upload (fail open)",
                exc_info=True,
            )
            return RateLimitDecision(allowed=True, remaining_bytes=self.quota_bytes)

        if record is None:
            return RateLimitDecision(allowed=True, remaining_bytes=self.quota_bytes)

        recent = record.in_window(window_start)
        used = sum(u.bytes for u in recent)
        remaining = self.quota_bytes - used

        if used + upload_size > self.quota_bytes:
            retry_after = None
            if recent:
                oldest = min(u.timestamp for u in recent)
                retry_after = math.ceil((oldest + self.window_ms - now) / 60_000)
            return RateLimitDecision(
                allowed=False,
                remaining_bytes=max(0, remaining),
                retry_after_minutes=retry_after,
            )

        return RateLimitDecision(allowed=True, remaining_bytes=remaining)

    async def record(self, client_key: str, upload_size: int) -> None:
        """
        Append a usage entry for a successful upload.

        Prunes expired entries and writes the full list back with a
        conditional put; retries on a concurrent write.
        """
        key = self.record_key(client_key)

        try:
            for attempt in range(1, self.record_attempts + 1):
                now = self._clock()
                record, version = await self._load(key)

                uploads = record.in_window(now - self.window_ms) if record else []
                uploads.append(UploadEntry(timestamp=now, bytes=upload_size))
                body = dump_json(RateLimitRecord(uploads=uploads).model_dump())

                try:
                    if version is None:
                        await self.store.put(key, body, "application/json", if_none_match=True)
                    else:
                        await self.store.put(key, body, "application/json", if_match=version)
                    return
                except PreconditionFailed:
                    logger.info(
                        "Rate limit record %s changed concurrently (attempt %d/%d)",
                        key, attempt, self.record_attempts,
                    )

            raise StorageError(
                f"gave up recording usage for {key} after {self.record_attempts} attempts"
            )
        except StorageError:
            if not self.record_fail_silent:
                raise
            logger.warning(
                "Failed to record upload usage (non-critical)",
                exc_info=True,
            )
