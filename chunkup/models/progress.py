"""Summary of a batch upload run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from chunkup.models.task import TaskStatus, UploadTask

MIB = 1024 * 1024


@dataclass
class UploadSummary:
    """Outcome of one ``chunkup upload`` or ``chunkup resume`` run.

    ``total`` counts cancelled tasks too, although they are no longer in the
    batch by the time the summary is built.
    """

    success: bool
    total: int
    succeeded: int
    failed: int
    duration: float
    errors: List[str] = field(default_factory=list)
    paused: int = 0
    cancelled: int = 0
    total_bytes: int = 0
    uploaded_bytes: int = 0
    duplicates: int = 0

    @property
    def unfinished(self) -> int:
        """Tasks that can still be resumed or retried."""
        return self.paused + self.failed

    @property
    def success_rate(self) -> float:
        return 100.0 if not self.total else self.succeeded * 100 / self.total

    @property
    def throughput_mbps(self) -> float:
        """Completed bytes per second, in MiB."""
        return self.uploaded_bytes / MIB / self.duration if self.duration else 0.0

    @classmethod
    def from_tasks(
        cls,
        tasks: List[UploadTask],
        *,
        duration: float,
        cancelled: int = 0,
        duplicates: int = 0,
    ) -> "UploadSummary":
        by_status: dict[TaskStatus, list[UploadTask]] = {}
        for task in tasks:
            by_status.setdefault(task.status, []).append(task)

        completed = by_status.get(TaskStatus.COMPLETED, [])
        errored = by_status.get(TaskStatus.ERROR, [])
        return cls(
            success=len(completed) == len(tasks),
            total=len(tasks) + cancelled,
            succeeded=len(completed),
            failed=len(errored),
            duration=duration,
            errors=[f"{t.filename}: {t.error}" for t in errored if t.error],
            paused=len(by_status.get(TaskStatus.PAUSED, [])),
            cancelled=cancelled,
            total_bytes=sum(t.size for t in tasks),
            uploaded_bytes=sum(t.size for t in completed),
            duplicates=duplicates,
        )
