"""Shared constants for the chunked uploader.

The chunk size and retry schedule match what the upload server expects from
browser clients; only change them together with the server configuration.
"""

# =============================================================================
# Chunking
# =============================================================================

# Bytes per chunk (1 MiB). The server's reported chunk count wins on resume.
CHUNK_SIZE = 1024 * 1024

# =============================================================================
# Retry Policy
# =============================================================================

# Additional attempts per chunk after the first one
MAX_CHUNK_RETRIES = 3

# Backoff base in seconds: 1, 2, 4
RETRY_DELAY_BASE = 1.0

# Pause after filling server-reported gaps so the server can converge
SETTLE_DELAY = 0.3

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# =============================================================================
# Scheduling
# =============================================================================

# Files uploaded at the same time
DEFAULT_CONCURRENCY = 3

# Terminal entries kept in the upload history
HISTORY_LIMIT = 100

# =============================================================================
# Transport
# =============================================================================

# HTTP timeout in seconds for every request, chunk posts included
DEFAULT_TIMEOUT = 30

# =============================================================================
# Media Validation
# =============================================================================

MAX_FILE_SIZE = 500 * 1024 * 1024

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/mpeg",
    "video/quicktime",
    "video/webm",
}
