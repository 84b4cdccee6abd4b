"""HTTP tests for the upload and read endpoints."""

import json
import re
import warnings

import pytest
from fastapi.testclient import TestClient

from conftest import HOUR_MS
from vibelink.auth.rate_limit import get_rate_limiter
from vibelink.core.config import settings
from vibelink.main import app
from vibelink.services.rate_limiter import RateLimiter
from vibelink.storage.base import StorageError
from vibelink.storage.factory import get_object_store
from vibelink.storage.memory import MemoryObjectStore

METADATA = {"name": "Weather Dashboard", "description": "Forecasts", "author": "alexstein"}


def upload(client, metadata=None, archive=b"PK\x03\x04 archive", preview=None, ip=None, **fields):
    files = {"zip": ("project.zip", archive, "application/zip")}
    if preview is not None:
        files["preview"] = ("preview.png", preview, "image/png")
    data = {"metadata": json.dumps(metadata or METADATA), **fields}
    headers = {"CF-Connecting-IP": ip} if ip else {}
    return client.post("/upload", data=data, files=files, headers=headers)


class TestUploadCreate:
    """POST /upload without credentials creates a project."""

    def test_success_shape(self, client):
        response = upload(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["isUpdate"] is False
        assert re.fullmatch(r"[a-z0-9]{12}", body["projectId"])
        assert body["url"] == f"{settings.PUBLIC_BASE_URL}/{body['projectId']}"
        assert re.fullmatch(r"[0-9a-f]{64}", body["authorToken"])
        assert "cannot be recovered" in body["message"]

    def test_metadata_round_trip(self, client):
        project_id = upload(client).json()["projectId"]

        response = client.get(f"/{project_id}/metadata")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        metadata = response.json()
        assert metadata["name"] == METADATA["name"]
        assert metadata["description"] == METADATA["description"]
        assert metadata["projectId"] == project_id
        assert "createdAt" in metadata
        assert "tokenHash" not in metadata

    def test_metadata_as_file_part(self, client):
        files = {
            "metadata": ("vibelink.json", json.dumps(METADATA).encode(), "application/json"),
            "zip": ("project.zip", b"zip", "application/zip"),
        }

        response = client.post("/upload", files=files)

        assert response.status_code == 200

    def test_client_created_at_is_replaced(self, client):
        response = upload(client, {"name": "x", "description": "d", "createdAt": 1700000000})

        assert response.status_code == 200
        project_id = response.json()["projectId"]
        created_at = client.get(f"/{project_id}/metadata").json()["createdAt"]
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", created_at)

    def test_unknown_preview_type_is_accepted(self, client):
        response = upload(client, {**METADATA, "preview": {"type": "screenshot"}})

        assert response.status_code == 200
        metadata = client.get(f"/{response.json()['projectId']}/metadata").json()
        assert metadata["preview"] == {"type": "screenshot"}

    def test_dangling_fork_is_accepted(self, client):
        response = upload(client, {**METADATA, "forkedFrom": "doesnotexist"})

        assert response.status_code == 200

    def test_missing_zip_is_400(self, client):
        response = client.post("/upload", data={"metadata": json.dumps(METADATA)})

        assert response.status_code == 400
        assert "Missing required fields" in response.json()["detail"]

    def test_missing_metadata_is_400(self, client):
        response = client.post("/upload", files={"zip": ("p.zip", b"zip", "application/zip")})

        assert response.status_code == 400

    def test_invalid_metadata_is_400(self, client):
        response = client.post(
            "/upload",
            data={"metadata": "not json"},
            files={"zip": ("p.zip", b"zip", "application/zip")},
        )

        assert response.status_code == 400

    def test_oversize_archive_is_413(self, client, store, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            response = upload(client, archive=b"x" * 11)

        assert response.status_code == 413
        assert "exceeds the" in response.json()["detail"]
        assert store.calls == []
        assert not [w for w in caught if "HTTP_413" in str(w.message)]


class TestUploadUpdate:
    """POST /upload with projectId + authorToken."""

    def test_authorized_update(self, client):
        created = upload(client).json()
        original = client.get(f"/{created['projectId']}/metadata").json()

        response = upload(
            client,
            {**METADATA, "name": "Weather Dashboard v2"},
            archive=b"new archive",
            projectId=created["projectId"],
            authorToken=created["authorToken"],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["isUpdate"] is True
        assert body["projectId"] == created["projectId"]
        assert "authorToken" not in body
        assert "message" not in body

        metadata = client.get(f"/{created['projectId']}/metadata").json()
        assert metadata["name"] == "Weather Dashboard v2"
        assert metadata["createdAt"] == original["createdAt"]
        assert client.get(f"/{created['projectId']}/download").content == b"new archive"

    def test_wrong_token_is_403(self, client, store):
        created = upload(client).json()
        auth_before = store._objects[f"{created['projectId']}/_auth.json"].body

        response = upload(
            client,
            {**METADATA, "name": "Hijacked"},
            projectId=created["projectId"],
            authorToken="0" * 64,
        )

        assert response.status_code == 403
        assert client.get(f"/{created['projectId']}/metadata").json()["name"] == METADATA["name"]
        assert store._objects[f"{created['projectId']}/_auth.json"].body == auth_before

    def test_unknown_project_is_404(self, client):
        response = upload(client, projectId="doesnotexist", authorToken="a" * 64)

        assert response.status_code == 404
        assert "doesnotexist" in response.json()["detail"]

    def test_bad_project_id_is_400(self, client):
        response = upload(client, projectId="bad/id", authorToken="a" * 64)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid project ID format."

    def test_back_to_back_updates_last_wins(self, client):
        created = upload(client).json()
        for name in ("one", "two"):
            response = upload(
                client,
                {**METADATA, "name": name},
                projectId=created["projectId"],
                authorToken=created["authorToken"],
            )
            assert response.status_code == 200

        assert client.get(f"/{created['projectId']}/metadata").json()["name"] == "two"


class TestUploadRateLimit:
    """429 responses carry Retry-After in seconds."""

    @pytest.fixture
    def tight_client(self, store, clock):
        limiter = RateLimiter(store, quota_bytes=1000, window_ms=HOUR_MS, clock=clock)
        app.dependency_overrides[get_object_store] = lambda: store
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()

    def test_over_quota_is_429(self, tight_client):
        assert upload(tight_client, archive=b"x" * 600, ip="198.51.100.7").status_code == 200

        response = upload(tight_client, archive=b"x" * 600, ip="198.51.100.7")

        assert response.status_code == 429
        assert response.headers["retry-after"] == "3600"
        assert "Rate limit exceeded" in response.json()["detail"]
        assert "Try again in 60 minutes" in response.json()["detail"]

    def test_quota_is_per_client_ip(self, tight_client):
        assert upload(tight_client, archive=b"x" * 600, ip="198.51.100.7").status_code == 200

        response = upload(tight_client, archive=b"x" * 600, ip="198.51.100.8")

        assert response.status_code == 200

    def test_window_expiry_restores_quota(self, tight_client, clock):
        assert upload(tight_client, archive=b"x" * 600, ip="198.51.100.7").status_code == 200
        clock.advance(HOUR_MS)

        response = upload(tight_client, archive=b"x" * 600, ip="198.51.100.7")

        assert response.status_code == 200

    def test_raw_ip_is_not_stored(self, tight_client, store):
        upload(tight_client, ip="198.51.100.7")

        assert not any("198.51.100.7" in key for key in store.keys())


class TestReads:
    """GET /{projectId}/download | metadata | preview.png."""

    def test_download(self, client):
        project_id = upload(client, archive=b"zip bytes").json()["projectId"]

        response = client.get(f"/{project_id}/download")

        assert response.status_code == 200
        assert response.content == b"zip bytes"
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"] == f'attachment; filename="{project_id}.zip"'

    def test_preview(self, client):
        project_id = upload(client, preview=b"\x89PNG data").json()["projectId"]

        response = client.get(f"/{project_id}/preview.png")

        assert response.status_code == 200
        assert response.content == b"\x89PNG data"
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_missing_preview_is_404(self, client):
        project_id = upload(client).json()["projectId"]

        assert client.get(f"/{project_id}/preview.png").status_code == 404

    @pytest.mark.parametrize("action", ["download", "metadata", "preview.png"])
    def test_unknown_project_is_404(self, client, action):
        assert client.get(f"/doesnotexist/{action}").status_code == 404

    def test_malformed_id_is_404(self, client):
        assert client.get("/bad.id/metadata").status_code == 404

    def test_auth_record_is_never_served(self, client):
        project_id = upload(client).json()["projectId"]

        assert client.get(f"/{project_id}/_auth.json").status_code in (404, 405)


class TestCorsAndErrors:
    """OPTIONS handling, health and the generic 500."""

    @pytest.mark.parametrize("path", ["/upload", "/abc/download", "/abc/metadata"])
    def test_bare_options(self, client, path):
        response = client.options(path)

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"

    def test_preflight(self, client):
        response = client.options(
            "/upload",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_storage_failure_is_generic_500(self):
        class DownStore(MemoryObjectStore):
            async def get(self, key):
                raise StorageError("connection refused to 10.0.0.5:5432")

            async def head(self, key):
                raise StorageError("connection refused to 10.0.0.5:5432")

        app.dependency_overrides[get_object_store] = lambda: DownStore()
        try:
            response = TestClient(app, raise_server_exceptions=False).get("/abc/metadata")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.text == "Internal server error"
        assert response.headers["access-control-allow-origin"] == "*"
