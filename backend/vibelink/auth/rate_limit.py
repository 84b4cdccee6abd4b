"""
FastAPI dependencies for upload quota enforcement.

  • get_client_key   — hashed client identity used as the quota key
  • get_rate_limiter — RateLimiter bound to the configured object store

The quota check itself runs inside the upload service, after the size
check, because it depends on the size of the uploaded files.

Raw client IPs are never stored or logged; only the hashed key is.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from vibelink.core.config import settings
from vibelink.services.rate_limiter import RateLimiter, client_key_for_ip
from vibelink.storage.base import ObjectStore
from vibelink.storage.factory import get_object_store


def get_client_ip(request: Request) -> str:
    """
    Originating client IP.

    Trusts CLIENT_IP_HEADER (set by the edge proxy), then the socket
    peer, then falls back to "unknown" — which all such clients share.
    """
    forwarded = request.headers.get(settings.CLIENT_IP_HEADER)
    if forwarded:
        return forwarded.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def get_client_key(request: Request) -> str:
    return client_key_for_ip(get_client_ip(request))


def get_rate_limiter(
    store: Annotated[ObjectStore, Depends(get_object_store)],
) -> RateLimiter:
    return RateLimiter.from_settings(store)
