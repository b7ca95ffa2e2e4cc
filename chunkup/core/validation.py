"""Input validation for chunkup.

Validators return the normalized value or raise a typed exception.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from chunkup.core.exceptions import (
    ConfigurationError,
    InvalidURLError,
    PathValidationError,
)
from chunkup.uploaders.constants import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT

MAX_CONCURRENCY = 16
MAX_TIMEOUT = 24 * 60 * 60


# =============================================================================
# URL Validation
# =============================================================================


def validate_server_url(url: str) -> str:
    """Validate and normalize an upload API base URL.

    Args:
        url: URL such as ``http://localhost:8000/api``.

    Returns:
        URL without surrounding whitespace or trailing slashes.

    Raises:
        InvalidURLError: If the URL is empty, lacks a scheme or host, or uses
            a scheme other than http/https.
    """
    if not url or not isinstance(url, str):
        raise InvalidURLError(str(url), "URL cannot be empty")

    url = url.strip().rstrip("/")
    parsed = urlparse(url)

    if not parsed.scheme:
        raise InvalidURLError(url, "URL must include scheme (http:// or https://)")
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, f"Unsupported scheme: {parsed.scheme}")
    if not parsed.netloc:
        raise InvalidURLError(url, "URL must include hostname")

    return url


# =============================================================================
# Numeric Validation
# =============================================================================


def validate_timeout(timeout: Any, default: int = DEFAULT_TIMEOUT) -> int:
    """Validate a request timeout in seconds."""
    if timeout is None:
        return default
    try:
        value = int(timeout)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Timeout must be an integer", field="timeout", value=timeout) from e
    if value < 1:
        raise ConfigurationError("Timeout must be at least 1 second", field="timeout", value=value)
    if value > MAX_TIMEOUT:
        raise ConfigurationError(
            f"Timeout cannot exceed {MAX_TIMEOUT} seconds", field="timeout", value=value
        )
    return value


def validate_concurrency(concurrency: Any, default: int = DEFAULT_CONCURRENCY) -> int:
    """Validate the number of files uploaded at the same time."""
    if concurrency is None:
        return default
    try:
        value = int(concurrency)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            "Concurrency must be an integer", field="concurrency", value=concurrency
        ) from e
    if value < 1:
        raise ConfigurationError("Concurrency must be at least 1", field="concurrency", value=value)
    if value > MAX_CONCURRENCY:
        raise ConfigurationError(
            f"Concurrency cannot exceed {MAX_CONCURRENCY}", field="concurrency", value=value
        )
    return value


# =============================================================================
# Path Validation
# =============================================================================


def validate_path_exists(path: str | Path, *, must_be_file: bool = False) -> Path:
    """Validate that a path exists.

    Args:
        path: Path to check.
        must_be_file: Reject directories.

    Returns:
        Resolved path.

    Raises:
        PathValidationError: If the path is missing or of the wrong kind.
    """
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise PathValidationError(str(path), "does not exist")
    if must_be_file and not resolved.is_file():
        raise PathValidationError(str(path), "is not a file")
    return resolved
