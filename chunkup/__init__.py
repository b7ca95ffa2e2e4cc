"""chunkup - Resumable chunked uploads of large media files.

This package provides a command-line client and library for sending large
image and video files to an upload server in fixed-size chunks:
- Per-chunk retry with exponential backoff
- Pause, resume and cancel, including resume after a restart
- Several files at once under a global concurrency cap
- Upload history and server monitoring
"""

__version__ = "0.1.0"
__author__ = "chunkup contributors"

from chunkup.core.client import UploadClient
from chunkup.core.config import Config, Profile
from chunkup.core.exceptions import (
    ApiError,
    ChunkupError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    ResourceNotFoundError,
    UploadError,
    UserCancelled,
    UserPaused,
    ValidationError,
)
from chunkup.models.task import HistoryEntry, TaskStatus, UploadTask
from chunkup.services.queue import UploadQueueManager
from chunkup.uploaders.engine import ChunkTransferEngine, TransferOutcome

__all__ = [
    "__version__",
    "UploadClient",
    "Config",
    "Profile",
    "ChunkTransferEngine",
    "TransferOutcome",
    "UploadQueueManager",
    "UploadTask",
    "TaskStatus",
    "HistoryEntry",
    "ChunkupError",
    "ApiError",
    "ConfigurationError",
    "ConnectionError",
    "NetworkError",
    "ResourceNotFoundError",
    "UploadError",
    "UserCancelled",
    "UserPaused",
    "ValidationError",
]
