"""Service layer for chunkup.

Provides the upload queue manager and the services built around it.
"""

from __future__ import annotations

from .base import BaseService
from .history import HistoryStore
from .monitoring import MonitoringService
from .queue import UploadQueueManager
from .tasks import TaskStore

__all__ = [
    "BaseService",
    "UploadQueueManager",
    "HistoryStore",
    "TaskStore",
    "MonitoringService",
]
