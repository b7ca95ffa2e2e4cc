"""Common utilities for the chunked uploader."""

from __future__ import annotations

import hashlib
import logging
import math
import mimetypes
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import TypeVar

from chunkup.core.exceptions import (
    ApiError,
    ChunkupError,
    ConnectionError,
    MediaValidationError,
    PathValidationError,
    TerminalChunkFailure,
    TransientChunkFailure,
)
from chunkup.core.output import format_file_size
from chunkup.uploaders.constants import (
    ALLOWED_MIME_TYPES,
    CHUNK_SIZE,
    MAX_CHUNK_RETRIES,
    MAX_FILE_SIZE,
    RETRY_DELAY_BASE,
    RETRYABLE_STATUS_CODES,
)
from chunkup.uploaders.signals import AbortSignal

logger = logging.getLogger(__name__)

T = TypeVar("T")

HASH_READ_SIZE = 8 * 1024 * 1024


# =============================================================================
# Chunk Arithmetic
# =============================================================================


def total_chunk_count(size: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Number of chunks needed for ``size`` bytes (at least one)."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive: {chunk_size}")
    return max(1, math.ceil(size / chunk_size))


def chunk_range(index: int, size: int, chunk_size: int = CHUNK_SIZE) -> tuple[int, int]:
    """Byte range ``[start, end)`` of chunk ``index``."""
    start = index * chunk_size
    return start, min(start + chunk_size, size)


def read_chunk(path: Path, index: int, size: int, chunk_size: int = CHUNK_SIZE) -> bytes:
    """Read one chunk from the source file without holding it open."""
    start, end = chunk_range(index, size, chunk_size)
    with open(path, "rb") as f:
        f.seek(start)
        return f.read(end - start)


def progress_percent(uploaded_count: int, total: int) -> float:
    """Percentage of chunks confirmed by the server."""
    if total <= 0:
        return 0.0
    return min(100.0, uploaded_count * 100.0 / total)


def uploaded_from_missing(total: int, missing: Iterable[int]) -> list[int]:
    """Chunk indices the server holds, given the ones it reports missing."""
    missing_set = set(missing)
    return [i for i in range(total) if i not in missing_set]


def pending_chunks(total: int, uploaded: Iterable[int]) -> list[int]:
    """Indices still to send, ascending."""
    done = set(uploaded)
    return [i for i in range(total) if i not in done]


# =============================================================================
# Retry
# =============================================================================


def is_retryable_status(status_code: int) -> bool:
    """Check if an HTTP status code warrants a retry.

    Retryable: 429 (rate limit), 5xx (server errors).
    Non-retryable: 2xx (success), other 4xx (client error).
    """
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def is_transient(error: Exception) -> bool:
    """Check if a failed chunk attempt is worth repeating."""
    if isinstance(error, (TransientChunkFailure, ConnectionError)):
        return True
    if isinstance(error, ApiError):
        return is_retryable_status(error.status_code)
    return False


def send_with_retry(
    send_fn: Callable[[], T],
    *,
    signal: AbortSignal,
    chunk_index: int,
    task_id: str | None = None,
    max_retries: int = MAX_CHUNK_RETRIES,
    backoff_base: float = RETRY_DELAY_BASE,
    label: str = "chunk",
) -> T:
    """Send one chunk, retrying transient failures with exponential backoff.

    The abort signal is checked before every attempt, while waiting between
    attempts and before giving up, so a pause or cancel takes effect without
    waiting out the backoff and is never reported as a chunk failure.

    Only transient failures are repeated; any other 4xx answer fails the
    chunk on its first attempt.

    Args:
        send_fn: Performs one attempt. Called again on retry, so it must be
            idempotent.
        signal: Abort signal of the running transfer.
        chunk_index: Index of the chunk being sent (for errors and logs).
        task_id: Task the chunk belongs to (for errors).
        max_retries: Attempts after the first one (default: 3).
        backoff_base: Delay before the first retry in seconds; doubles
            after each failure (default: 1 -> 1, 2, 4).
        label: Label for log messages.

    Returns:
        Whatever ``send_fn`` returned on the successful attempt.

    Raises:
        UserPaused: If the signal fired with a pause.
        UserCancelled: If the signal fired with a cancellation.
        TerminalChunkFailure: If the failure is not transient, or every
            attempt failed.
    """
    last_exc: Exception | None = None

    for attempt in range(max_retries + 1):
        signal.raise_if_aborted(task_id)
        try:
            return send_fn()
        except ChunkupError as e:
            last_exc = e
            signal.raise_if_aborted(task_id)
            if not is_transient(e):
                raise TerminalChunkFailure(chunk_index, attempt + 1, e, task_id=task_id) from e

        if attempt < max_retries:
            delay = backoff_base * (2**attempt)
            logger.warning(
                "%s: %s on attempt %d/%d, retrying in %.1fs",
                label,
                last_exc,
                attempt + 1,
                max_retries + 1,
                delay,
            )
            if signal.wait(delay):
                raise signal.error(task_id)

    raise TerminalChunkFailure(chunk_index, max_retries + 1, last_exc, task_id=task_id)


# =============================================================================
# Media Files
# =============================================================================


def guess_mime_type(path: Path) -> str:
    """MIME type from the file name, ``application/octet-stream`` if unknown."""
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "application/octet-stream"


def validate_media_file(
    path: Path,
    *,
    max_size: int = MAX_FILE_SIZE,
    allowed_types: set[str] | None = None,
) -> str:
    """Check that a file is an accepted image or video upload.

    Returns:
        The file's MIME type.

    Raises:
        PathValidationError: If the path is not a regular file.
        MediaValidationError: If the type is not allowed or the file is too large.
    """
    if not path.is_file():
        raise PathValidationError(str(path), "is not a file")

    mime_type = guess_mime_type(path)
    allowed = ALLOWED_MIME_TYPES if allowed_types is None else allowed_types
    if mime_type not in allowed:
        raise MediaValidationError(
            str(path), "Invalid file type. Only images and videos are allowed."
        )

    size = path.stat().st_size
    if size > max_size:
        raise MediaValidationError(str(path), f"File size exceeds {format_file_size(max_size)}")

    return mime_type


def collect_media_files(paths: Sequence[Path], *, recursive: bool = True) -> list[Path]:
    """Expand files and directories into a de-duplicated list of files.

    Hidden files are skipped. Directory contents are sorted; explicit file
    arguments keep their order.

    Raises:
        PathValidationError: If a path does not exist.
    """
    files: list[Path] = []
    seen: set[Path] = set()

    def add(path: Path) -> None:
        resolved = path.resolve()
        if resolved not in seen:
            seen.add(resolved)
            files.append(path)

    for root in paths:
        if not root.exists():
            raise PathValidationError(str(root), "does not exist")
        if root.is_file():
            add(root)
            continue

        pattern = "**/*" if recursive else "*"
        for path in sorted(root.glob(pattern)):
            if not path.is_file() or path.name.startswith("."):
                continue
            add(path)

    return files


def compute_content_hash(path: Path) -> str:
    """SHA-256 hex digest of a file, read in blocks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_READ_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()
