"""Tests for chunkup.core.client."""

from __future__ import annotations

import json

import httpx
import pytest

from chunkup.core.client import UploadClient
from chunkup.core.exceptions import (
    ApiError,
    InvalidURLError,
    NetworkError,
    ResourceNotFoundError,
    ServerUnreachableError,
)

BASE_URL = "http://uploads.test/api"


def make_client(handler) -> UploadClient:
    """UploadClient whose requests are answered by ``handler``."""
    client = UploadClient(base_url=BASE_URL + "/")
    client._client = httpx.Client(base_url=client.base_url, transport=httpx.MockTransport(handler))
    return client


# =============================================================================
# Construction
# =============================================================================


class TestUploadClientInit:
    """Tests for UploadClient construction."""

    def test_normalizes_url(self):
        assert UploadClient(base_url=" http://uploads.test/api/ ").base_url == BASE_URL

    def test_rejects_invalid_url(self):
        with pytest.raises(InvalidURLError):
            UploadClient(base_url="uploads.test")

    def test_close_releases_http_client(self):
        client = make_client(lambda request: httpx.Response(200, json={}))

        client.close()

        assert client._client is None


# =============================================================================
# Upload Endpoints
# =============================================================================


class TestUploadEndpoints:
    """Tests for the upload session endpoints."""

    def test_initiate(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"upload_id": "abc"})

        client = make_client(handler)

        session_id = client.initiate("clip.mp4", 2048, "video/mp4", 2, "d41d8cd9")

        assert session_id == "abc"
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/upload/initiate"
        assert seen["body"] == {
            "filename": "clip.mp4",
            "file_size": 2048,
            "mime_type": "video/mp4",
            "total_chunks": 2,
            "md5": "d41d8cd9",
        }

    def test_initiate_without_hash(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"upload_id": "abc"})

        make_client(handler).initiate("a.png", 1, "image/png", 1)

        assert "md5" not in bodies[0]

    def test_upload_chunk_sends_multipart(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(
                200, json={"progress": 50.0, "uploaded_chunks": 1, "total_chunks": 2}
            )

        receipt = make_client(handler).upload_chunk("abc", 1, b"chunk-bytes")

        assert receipt.progress == 50.0
        assert receipt.uploaded_count == 1
        assert seen["path"] == "/api/upload/chunk"
        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="upload_id"' in seen["body"]
        assert b'name="chunk_index"' in seen["body"]
        assert b"chunk-bytes" in seen["body"]

    def test_get_status(self):
        def handler(request):
            assert request.url.path == "/api/upload/status/abc"
            return httpx.Response(
                200,
                json={
                    "upload_id": "abc",
                    "total_chunks": 4,
                    "uploaded_chunks": 2,
                    "missing_chunks": [1, 3],
                    "progress": 50.0,
                    "status": "uploading",
                },
            )

        status = make_client(handler).get_status("abc")

        assert status.session_id == "abc"
        assert status.total_chunks == 4
        assert status.missing_chunks == [1, 3]

    def test_finalize_sends_requester(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "message": "Upload completed",
                    "file_path": "/uploads/clip.mp4",
                    "file_size": 2048,
                    "md5": "ff",
                    "is_duplicate": True,
                },
            )

        result = make_client(handler).finalize("abc", "alice")

        assert bodies == [{"upload_id": "abc", "user_id": "alice"}]
        assert result.file_path == "/uploads/clip.mp4"
        assert result.is_duplicate is True

    def test_cancel_uses_delete(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"message": "Upload cancelled"})

        make_client(handler).cancel("abc")

        assert seen == [("DELETE", "/api/upload/cancel/abc")]


# =============================================================================
# Monitoring Endpoints
# =============================================================================


class TestMonitoringEndpoints:
    """Tests for the monitoring endpoints."""

    def test_monitoring_stats(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "storage": {"total_size": 10, "total_size_mb": 0.5, "file_count": 3},
                    "active_uploads": 1,
                    "upload_details": [{"upload_id": "abc", "progress": 25.0}],
                    "metrics": {"total_uploads": 4, "successful_uploads": 3, "success_rate": 75.0},
                },
            )

        stats = make_client(handler).monitoring_stats()

        assert stats.storage.file_count == 3
        assert stats.upload_details[0].session_id == "abc"
        assert stats.metrics.success_rate == 75.0

    def test_health(self):
        client = make_client(lambda r: httpx.Response(200, json={"status": "healthy"}))

        assert client.health().healthy is True


# =============================================================================
# Error Mapping
# =============================================================================


class TestErrorMapping:
    """Tests for mapping HTTP failures to typed errors."""

    def test_not_found(self):
        client = make_client(lambda r: httpx.Response(404, json={"detail": "Upload not found"}))

        with pytest.raises(ResourceNotFoundError) as excinfo:
            client.get_status("gone")

        assert excinfo.value.server_message == "Upload not found"

    def test_api_error_carries_server_message(self):
        client = make_client(lambda r: httpx.Response(400, json={"message": "Invalid file type"}))

        with pytest.raises(ApiError) as excinfo:
            client.initiate("a.txt", 1, "text/plain", 1)

        assert excinfo.value.status_code == 400
        assert excinfo.value.server_message == "Invalid file type"
        assert excinfo.value.method == "POST"

    def test_plain_text_error_body(self):
        client = make_client(lambda r: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(ApiError) as excinfo:
            client.health()

        assert excinfo.value.status_code == 502
        assert excinfo.value.server_message == "Bad Gateway"

    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ServerUnreachableError):
            make_client(handler).health()

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(NetworkError, match="Timeout after 30s"):
            make_client(handler).upload_chunk("abc", 0, b"x")

    def test_other_transport_error(self):
        def handler(request):
            raise httpx.RemoteProtocolError("reset", request=request)

        with pytest.raises(NetworkError):
            make_client(handler).health()
