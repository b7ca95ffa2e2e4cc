"""Chunked upload transport for chunkup.

This module provides the building blocks for chunked uploads:
- Chunk arithmetic, retry and media helpers
- Abort signals and the transfer registry

The transfer engine lives in `chunkup.uploaders.engine` and is not imported
here. Use `UploadQueueManager` from `chunkup.services.queue` as the public
API.
"""

from chunkup.uploaders.common import (
    collect_media_files,
    compute_content_hash,
    guess_mime_type,
    send_with_retry,
    total_chunk_count,
    validate_media_file,
)
from chunkup.uploaders.constants import (
    ALLOWED_MIME_TYPES,
    CHUNK_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_TIMEOUT,
    HISTORY_LIMIT,
    MAX_CHUNK_RETRIES,
    MAX_FILE_SIZE,
    RETRY_DELAY_BASE,
    SETTLE_DELAY,
)
from chunkup.uploaders.signals import AbortReason, AbortSignal, TransferRegistry

__all__ = [
    # Constants
    "ALLOWED_MIME_TYPES",
    "CHUNK_SIZE",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_TIMEOUT",
    "HISTORY_LIMIT",
    "MAX_CHUNK_RETRIES",
    "MAX_FILE_SIZE",
    "RETRY_DELAY_BASE",
    "SETTLE_DELAY",
    # Common utilities
    "collect_media_files",
    "compute_content_hash",
    "guess_mime_type",
    "send_with_retry",
    "total_chunk_count",
    "validate_media_file",
    # Signals
    "AbortReason",
    "AbortSignal",
    "TransferRegistry",
]
