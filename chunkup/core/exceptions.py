"""Exceptions raised by chunkup.

Everything derives from ``ChunkupError``; the CLI prints ``str(error)`` and
exits, while the engine and queue inspect the subclasses to decide between
retrying, pausing and failing a task.
"""

from __future__ import annotations

from typing import Any


class ChunkupError(Exception):
    """Base exception for all chunkup errors.

    ``details`` are appended to the message as ``(key=value, ...)``.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({extra})"


class _FieldError(ChunkupError):
    """Error tied to one named setting or argument."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


# =============================================================================
# Configuration and Input Errors
# =============================================================================


class ConfigurationError(_FieldError):
    """Config file, profile or setting is missing or invalid."""


class ProfileNotFoundError(ConfigurationError):
    def __init__(self, profile: str):
        super().__init__(f"Profile not found: {profile}", field="profile", value=profile)
        self.profile = profile


class ValidationError(_FieldError):
    """User input was rejected before any request was made."""


class InvalidURLError(ValidationError):
    def __init__(self, url: str, reason: str = ""):
        message = f"Invalid URL: {url} - {reason}" if reason else f"Invalid URL: {url}"
        super().__init__(message, field="url", value=url)
        self.url = url
        self.reason = reason


class PathValidationError(ValidationError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Invalid path: {path} - {reason}", field="path", value=path)
        self.path = path
        self.reason = reason


class MediaValidationError(ValidationError):
    """File is not an accepted media upload (type or size)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot upload {path}: {reason}", field="file", value=path)
        self.path = path
        self.reason = reason


# =============================================================================
# Transport Errors
# =============================================================================


class ConnectionError(ChunkupError):
    """The request never got an HTTP response."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url} if url else None)
        self.url = url


class NetworkError(ConnectionError):
    """DNS, TCP, TLS or timeout failure."""

    def __init__(self, url: str, cause: str | None = None):
        message = f"Network error connecting to {url}"
        super().__init__(f"{message}: {cause}" if cause else message, url)
        self.cause = cause


class ServerUnreachableError(ConnectionError):
    def __init__(self, url: str):
        super().__init__(f"Server unreachable: {url}", url)


class ApiError(ChunkupError):
    """Upload server answered with an HTTP error status."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        method: str | None = None,
        path: str | None = None,
    ):
        details: dict[str, Any] = {"status_code": status_code}
        if method:
            details["method"] = method
        if path:
            details["path"] = path
        super().__init__(message or f"HTTP {status_code}", details)
        self.status_code = status_code
        self.server_message = message
        self.method = method
        self.path = path

    @property
    def is_transient(self) -> bool:
        """Rate limiting and server-side errors may succeed when repeated."""
        return self.status_code == 429 or self.status_code >= 500


class ResourceNotFoundError(ApiError):
    """Requested upload session or endpoint does not exist."""

    def __init__(self, resource_type: str, resource_id: str, message: str = ""):
        super().__init__(
            404,
            message or f"{resource_type} not found: {resource_id}",
            path=resource_id,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


# =============================================================================
# Upload Errors
# =============================================================================


class UploadError(ChunkupError):
    """Error while transferring a file."""

    default_reason = "Upload failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        task_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        full_details = details or {}
        if task_id:
            full_details["task"] = task_id
        super().__init__(message or self.default_reason, full_details)
        self.task_id = task_id

    @property
    def reason(self) -> str:
        """Human-readable failure reason, without the detail suffix."""
        return self.message


class TransientChunkFailure(UploadError):
    """A single chunk attempt failed in a way worth repeating."""

    def __init__(self, chunk_index: int, cause: str, *, task_id: str | None = None):
        super().__init__(
            cause,
            task_id=task_id,
            details={"chunk": chunk_index},
        )
        self.chunk_index = chunk_index


class TerminalChunkFailure(UploadError):
    """A chunk could not be delivered within the retry budget."""

    def __init__(
        self,
        chunk_index: int,
        attempts: int,
        last_error: Exception | None = None,
        *,
        task_id: str | None = None,
    ):
        reason = _server_reason(last_error) or self.default_reason
        super().__init__(
            reason,
            task_id=task_id,
            details={"chunk": chunk_index, "attempts": attempts},
        )
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.last_error = last_error


class SessionInitiationFailure(UploadError):
    """The server refused or failed to open an upload session."""

    default_reason = "Failed to initiate upload"

    def __init__(self, cause: Exception | None = None, *, task_id: str | None = None):
        super().__init__(_server_reason(cause) or None, task_id=task_id)
        self.cause = cause


class ReconciliationFailure(UploadError):
    """Server chunk state could not be fetched for a session."""

    default_reason = "Failed to fetch upload status"

    def __init__(
        self,
        session_id: str,
        cause: Exception | None = None,
        *,
        task_id: str | None = None,
    ):
        super().__init__(
            _server_reason(cause) or None,
            task_id=task_id,
            details={"session": session_id},
        )
        self.session_id = session_id
        self.cause = cause


class FinalizationFailure(UploadError):
    """The server rejected assembly of an uploaded file."""

    default_reason = "Failed to finalize upload"

    def __init__(
        self,
        session_id: str,
        cause: Exception | None = None,
        *,
        task_id: str | None = None,
    ):
        super().__init__(
            _server_reason(cause) or None,
            task_id=task_id,
            details={"session": session_id},
        )
        self.session_id = session_id
        self.cause = cause


class TransferAborted(UploadError):
    """Transfer stopped cooperatively at the user's request."""

    default_reason = "Upload aborted"


class UserPaused(TransferAborted):
    """Transfer stopped because the user paused it."""

    default_reason = "Upload paused"


class UserCancelled(TransferAborted):
    """Transfer stopped because the user cancelled it."""

    default_reason = "Upload cancelled"


def _server_reason(error: Exception | None) -> str:
    """Prefer the server-supplied message of an error, if any."""
    if error is None:
        return ""
    if isinstance(error, ApiError) and error.server_message:
        return error.server_message
    if isinstance(error, ChunkupError):
        return error.message
    return str(error)
