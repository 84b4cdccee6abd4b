"""
Project identifiers and author tokens.

Security notes:
  • SHA-256 is used for token hashing — acceptable because author tokens
    are high-entropy random strings (not low-entropy passwords).
  • generate_token() returns the raw token exactly once — the caller
    must hand it to the author immediately. Only the digest is stored,
    so a lost token cannot be recovered or reset.
  • Project ids come from `secrets`, not `random`. Uniqueness is not
    guaranteed here; the repository handles collisions.
"""

import hashlib
import hmac
import re
import secrets

PROJECT_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
PROJECT_ID_LENGTH = 12

_PROJECT_ID_RE = re.compile(r"[a-zA-Z0-9_-]+")


def generate_project_id() -> str:
    """Return a 12-character id drawn uniformly from [a-z0-9]."""
    return "".join(
        secrets.choice(PROJECT_ID_ALPHABET) for _ in range(PROJECT_ID_LENGTH)
    )


def is_valid_project_id(value: str) -> bool:
    """Client-supplied ids must be URL-safe before they become storage keys."""
    return bool(_PROJECT_ID_RE.fullmatch(value))


def generate_token() -> str:
    """Return a new author token: 32 random bytes, hex-encoded (64 chars)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash a raw author token using SHA-256.

    Returns the lowercase hex digest string for storage/comparison.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token(token: str, token_hash: str) -> bool:
    """Constant-time check of a raw token against a stored digest."""
    return hmac.compare_digest(hash_token(token), token_hash)
