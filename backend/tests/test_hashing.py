"""Tests for project ids and author tokens."""

import hashlib
import re

import pytest

from vibelink.auth.hashing import (
    PROJECT_ID_ALPHABET,
    generate_project_id,
    generate_token,
    hash_token,
    is_valid_project_id,
    verify_token,
)


class TestGenerateProjectId:
    """Tests for generate_project_id."""

    def test_shape(self):
        """Ids are 12 lowercase alphanumerics."""
        for _ in range(50):
            assert re.fullmatch(r"[a-z0-9]{12}", generate_project_id())

    def test_alphabet_has_36_symbols(self):
        assert len(set(PROJECT_ID_ALPHABET)) == 36

    def test_ids_differ(self):
        ids = {generate_project_id() for _ in range(200)}
        assert len(ids) == 200


class TestIsValidProjectId:
    """Tests for client-supplied id validation."""

    @pytest.mark.parametrize("value", ["abc123", "Weather-Dash_x7k2", "A", "a-b_c"])
    def test_accepts_url_safe(self, value):
        assert is_valid_project_id(value)

    @pytest.mark.parametrize("value", ["", "../etc", "a/b", "abc def", "abc.json", "naïve", "id\n"])
    def test_rejects_path_like_or_unsafe(self, value):
        assert not is_valid_project_id(value)


class TestTokens:
    """Tests for author token generation and hashing."""

    def test_token_is_64_hex_chars(self):
        token = generate_token()
        assert re.fullmatch(r"[0-9a-f]{64}", token)

    def test_tokens_are_unique(self):
        assert generate_token() != generate_token()

    def test_hash_is_lowercase_sha256_hex(self):
        assert hash_token("secret") == hashlib.sha256(b"secret").hexdigest()
        assert hash_token("secret") == hash_token("secret").lower()

    def test_verify_token(self):
        token = generate_token()
        digest = hash_token(token)

        assert verify_token(token, digest)
        assert not verify_token(token + "0", digest)
        assert not verify_token("", digest)
