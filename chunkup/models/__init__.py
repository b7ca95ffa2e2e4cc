"""Data models for chunkup.

Provides Pydantic models for upload server payloads and dataclasses for
client-side task state and run summaries.
"""

from __future__ import annotations

from .api import (
    ChunkReceipt,
    FinalizeResult,
    HealthStatus,
    InitiateResponse,
    MonitoringStats,
    SessionStatus,
    StorageStats,
    UploadMetrics,
    UploadSnapshot,
)
from .base import BaseModel
from .progress import UploadSummary
from .task import HistoryEntry, TaskStatus, UploadTask

__all__ = [
    # Base
    "BaseModel",
    # Server payloads
    "InitiateResponse",
    "ChunkReceipt",
    "SessionStatus",
    "FinalizeResult",
    "StorageStats",
    "UploadSnapshot",
    "UploadMetrics",
    "MonitoringStats",
    "HealthStatus",
    # Task state
    "TaskStatus",
    "UploadTask",
    "HistoryEntry",
    # Summaries
    "UploadSummary",
]
