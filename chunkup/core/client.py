"""HTTP client for the chunked upload API.

Wraps the upload-session endpoints (initiate, chunk, status, finalize,
cancel) and the read-only monitoring endpoints. Each call is a single
attempt; retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from chunkup.core.exceptions import (
    ApiError,
    NetworkError,
    ResourceNotFoundError,
    ServerUnreachableError,
)
from chunkup.core.validation import validate_server_url
from chunkup.models.api import (
    ChunkReceipt,
    FinalizeResult,
    HealthStatus,
    InitiateResponse,
    MonitoringStats,
    SessionStatus,
)
from chunkup.uploaders.constants import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


# =============================================================================
# UploadClient
# =============================================================================


@dataclass
class UploadClient:
    """HTTP client for the upload server API."""

    base_url: str
    timeout: int = DEFAULT_TIMEOUT
    verify_ssl: bool = True
    _client: httpx.Client | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = validate_server_url(self.base_url)

    # =========================================================================
    # Client Management
    # =========================================================================

    def _get_client(self) -> httpx.Client:
        """Shared connection pool, opened on first request."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> UploadClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        data: Any | None = None,
        files: Any | None = None,
        timeout: int | None = None,
    ) -> httpx.Response:
        """Execute one HTTP request and map failures to typed errors.

        Args:
            method: HTTP method.
            path: API path relative to the base URL.
            json: JSON body.
            data: Form fields.
            files: Multipart file parts.
            timeout: Request timeout override.

        Returns:
            HTTP response with a 2xx status.

        Raises:
            ServerUnreachableError: If the connection could not be made.
            NetworkError: On timeouts and other transport failures.
            ResourceNotFoundError: On HTTP 404.
            ApiError: On any other HTTP error status.
        """
        client = self._get_client()
        request_timeout = timeout or self.timeout

        try:
            resp = client.request(
                method,
                path,
                json=json,
                data=data,
                files=files,
                timeout=request_timeout,
            )
        except httpx.ConnectError as e:
            raise ServerUnreachableError(self.base_url) from e
        except httpx.TimeoutException as e:
            raise NetworkError(self.base_url, f"Timeout after {request_timeout}s") from e
        except httpx.TransportError as e:
            raise NetworkError(self.base_url, str(e)) from e

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 404:
            raise ResourceNotFoundError("resource", path, _error_message(resp))
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, _error_message(resp), method=method, path=path)
        return resp

    # =========================================================================
    # Upload Sessions
    # =========================================================================

    def initiate(
        self,
        filename: str,
        size: int,
        mime_type: str,
        total_chunks: int,
        content_hash: str | None = None,
    ) -> str:
        """Open an upload session.

        Returns:
            Server-assigned session ID.
        """
        payload: dict[str, Any] = {
            "filename": filename,
            "file_size": size,
            "mime_type": mime_type,
            "total_chunks": total_chunks,
        }
        if content_hash:
            payload["md5"] = content_hash
        resp = self._request("POST", "/upload/initiate", json=payload)
        return InitiateResponse.model_validate(resp.json()).session_id

    def upload_chunk(self, session_id: str, index: int, data: bytes) -> ChunkReceipt:
        """Send one chunk of a session as multipart form data."""
        resp = self._request(
            "POST",
            "/upload/chunk",
            data={"upload_id": session_id, "chunk_index": str(index)},
            files={"chunk": (f"chunk_{index}", data, "application/octet-stream")},
        )
        return ChunkReceipt.model_validate(resp.json())

    def get_status(self, session_id: str) -> SessionStatus:
        """Fetch the server's view of a session, including missing chunks."""
        resp = self._request("GET", f"/upload/status/{session_id}")
        return SessionStatus.model_validate(resp.json())

    def finalize(self, session_id: str, requester_id: str | None = None) -> FinalizeResult:
        """Ask the server to assemble the uploaded chunks into a file."""
        payload: dict[str, Any] = {"upload_id": session_id}
        if requester_id:
            payload["user_id"] = requester_id
        resp = self._request("POST", "/upload/finalize", json=payload)
        return FinalizeResult.model_validate(resp.json())

    def cancel(self, session_id: str) -> None:
        """Discard a session and its stored chunks on the server."""
        self._request("DELETE", f"/upload/cancel/{session_id}")

    # =========================================================================
    # Monitoring
    # =========================================================================

    def monitoring_stats(self) -> MonitoringStats:
        """Fetch storage usage, active uploads and outcome counters."""
        resp = self._request("GET", "/monitoring/stats")
        return MonitoringStats.model_validate(resp.json())

    def health(self) -> HealthStatus:
        """Fetch the server health report."""
        resp = self._request("GET", "/monitoring/health")
        return HealthStatus.model_validate(resp.json())


def _error_message(resp: httpx.Response) -> str:
    """Extract the server's error message from a JSON error body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()[:200]
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return ""
