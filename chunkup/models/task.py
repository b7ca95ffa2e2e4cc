"""Upload task state and terminal history records."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from chunkup.uploaders.common import guess_mime_type, progress_percent, total_chunk_count
from chunkup.uploaders.constants import CHUNK_SIZE


class TaskStatus(Enum):
    """Lifecycle states of an upload task."""

    PENDING = "pending"
    UPLOADING = "uploading"
    PAUSED = "paused"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.UPLOADING, TaskStatus.FINALIZING)


@dataclass
class UploadTask:
    """One file being transferred.

    ``uploaded_chunks`` only ever holds indices the server has confirmed.
    ``progress`` is the highest percentage observed so far and does not go
    down while the task is active.
    """

    id: str
    source: Path
    filename: str
    size: int
    mime_type: str
    chunk_size: int = CHUNK_SIZE
    total_chunks: int = 0
    uploaded_chunks: list[int] = field(default_factory=list)
    session_id: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    started_at: float = field(default_factory=time.time)
    paused_at: Optional[float] = None
    paused_duration: float = 0.0
    ended_at: Optional[float] = None
    error: Optional[str] = None
    content_hash: Optional[str] = None

    def __post_init__(self) -> None:
        self.source = Path(self.source)
        if self.total_chunks <= 0:
            self.total_chunks = total_chunk_count(self.size, self.chunk_size)
        self.uploaded_chunks = sorted(set(self.uploaded_chunks))

    @classmethod
    def from_path(
        cls,
        path: Path,
        *,
        task_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        content_hash: Optional[str] = None,
    ) -> "UploadTask":
        """Create a pending task for a local file."""
        path = Path(path)
        return cls(
            id=task_id or uuid.uuid4().hex[:12],
            source=path,
            filename=path.name,
            size=path.stat().st_size,
            mime_type=mime_type or guess_mime_type(path),
            content_hash=content_hash,
        )

    # =========================================================================
    # Chunk Accounting
    # =========================================================================

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded_chunks)

    @property
    def computed_progress(self) -> float:
        """Progress implied by the current chunk state alone."""
        return progress_percent(len(self.uploaded_chunks), self.total_chunks)

    def mark_uploaded(self, index: int) -> float:
        """Record a confirmed chunk and return the recorded progress."""
        if index not in self.uploaded_chunks:
            self.uploaded_chunks.append(index)
            self.uploaded_chunks.sort()
        self.progress = max(self.progress, self.computed_progress)
        return self.progress

    def reset_for_retry(self) -> None:
        """Discard all transfer state so the next attempt starts from zero."""
        self.uploaded_chunks = []
        self.session_id = None
        self.total_chunks = total_chunk_count(self.size, self.chunk_size)
        self.status = TaskStatus.PENDING
        self.progress = 0.0
        self.started_at = time.time()
        self.paused_at = None
        self.paused_duration = 0.0
        self.ended_at = None
        self.error = None

    # =========================================================================
    # Timing
    # =========================================================================

    @property
    def active_duration(self) -> float:
        """Seconds spent uploading, excluding paused time."""
        end = self.ended_at or self.paused_at or time.time()
        return max(0.0, end - self.started_at - self.paused_duration)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "source": str(self.source),
            "filename": self.filename,
            "size": self.size,
            "mime_type": self.mime_type,
            "chunk_size": self.chunk_size,
            "total_chunks": self.total_chunks,
            "uploaded_chunks": list(self.uploaded_chunks),
            "session_id": self.session_id,
            "status": self.status.value,
            "progress": self.progress,
            "started_at": self.started_at,
            "paused_at": self.paused_at,
            "paused_duration": self.paused_duration,
            "ended_at": self.ended_at,
            "error": self.error,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadTask":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            source=Path(data["source"]),
            filename=data["filename"],
            size=data["size"],
            mime_type=data.get("mime_type", "application/octet-stream"),
            chunk_size=data.get("chunk_size", CHUNK_SIZE),
            total_chunks=data.get("total_chunks", 0),
            uploaded_chunks=data.get("uploaded_chunks", []),
            session_id=data.get("session_id"),
            status=TaskStatus(data.get("status", "pending")),
            progress=data.get("progress", 0.0),
            started_at=data.get("started_at", time.time()),
            paused_at=data.get("paused_at"),
            paused_duration=data.get("paused_duration", 0.0),
            ended_at=data.get("ended_at"),
            error=data.get("error"),
            content_hash=data.get("content_hash"),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Terminal record of a completed or failed upload."""

    id: str
    filename: str
    size: int
    mime_type: str
    status: str  # "completed" or "failed"
    timestamp: float
    duration: float
    file_path: Optional[str] = None
    error: Optional[str] = None
    is_duplicate: bool = False

    @classmethod
    def for_task(
        cls,
        task: UploadTask,
        status: str,
        *,
        file_path: Optional[str] = None,
        is_duplicate: bool = False,
    ) -> "HistoryEntry":
        """Build the history record for a task that just reached ``status``."""
        return cls(
            id=task.id,
            filename=task.filename,
            size=task.size,
            mime_type=task.mime_type,
            status=status,
            timestamp=task.ended_at or time.time(),
            duration=task.active_duration,
            file_path=file_path,
            error=task.error if status == "failed" else None,
            is_duplicate=is_duplicate,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "size": self.size,
            "mime_type": self.mime_type,
            "status": self.status,
            "timestamp": self.timestamp,
            "duration": self.duration,
            "file_path": self.file_path,
            "error": self.error,
            "is_duplicate": self.is_duplicate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=data["id"],
            filename=data["filename"],
            size=data.get("size", 0),
            mime_type=data.get("mime_type", ""),
            status=data["status"],
            timestamp=data.get("timestamp", 0.0),
            duration=data.get("duration", 0.0),
            file_path=data.get("file_path"),
            error=data.get("error"),
            is_duplicate=data.get("is_duplicate", False),
        )
