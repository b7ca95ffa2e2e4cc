"""Persistence of unfinished upload tasks.

Saves the session ID, confirmed chunks and timing of every task that has not
completed, so an upload interrupted by pause, failure or process exit can be
resumed or retried later.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Optional

from chunkup.core.config import TASKS_FILE
from chunkup.models.task import TaskStatus, UploadTask

logger = logging.getLogger(__name__)


class TaskStore:
    """JSON-backed store of unfinished upload tasks keyed by task ID."""

    def __init__(self, path: Optional[Path] = None):
        """Initialize task store.

        Args:
            path: JSON file holding the tasks.
        """
        self.path = path or TASKS_FILE
        self._lock = threading.RLock()
        self._tasks: dict[str, UploadTask] = {}

    # =========================================================================
    # File I/O
    # =========================================================================

    def load(self) -> list[UploadTask]:
        """Read saved tasks, replacing the in-memory set.

        Tasks saved while a transfer was running are loaded as paused,
        since no transfer survives the process that ran it.

        Returns:
            Loaded tasks in saved order.
        """
        with self._lock:
            self._tasks = {}
            if not self.path.exists():
                return []
            try:
                with open(self.path) as f:
                    data = json.load(f)
                tasks = [UploadTask.from_dict(item) for item in data]
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring unreadable task file %s: %s", self.path, e)
                return []

            for task in tasks:
                if task.status.is_active:
                    task.status = TaskStatus.PAUSED
                    task.paused_at = task.paused_at or time.time()
                self._tasks[task.id] = task
            return list(self._tasks.values())

    def save(self) -> None:
        """Write the in-memory set to disk."""
        with self._lock:
            data = [task.to_dict() for task in self._tasks.values()]
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, task_id: str) -> Optional[UploadTask]:
        """Find a task by ID or unique ID prefix."""
        with self._lock:
            if task_id in self._tasks:
                return self._tasks[task_id]
            matches = [t for tid, t in self._tasks.items() if tid.startswith(task_id)]
            return matches[0] if len(matches) == 1 else None

    def tasks(self) -> list[UploadTask]:
        with self._lock:
            return list(self._tasks.values())

    def upsert(self, task: UploadTask) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def remove(self, task_id: str) -> bool:
        """Forget a task.

        Returns:
            True if the task was stored.
        """
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks

    # =========================================================================
    # Manager Events
    # =========================================================================

    def apply(self, task_id: str, changes: dict[str, Any]) -> None:
        """Apply a queue manager update to the stored task.

        Completed tasks are dropped. The file is rewritten whenever the
        status changes; progress-only updates stay in memory until the next
        ``save``.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return
            for name, value in changes.items():
                setattr(task, name, value)

            if "status" not in changes:
                return
            if task.status == TaskStatus.COMPLETED:
                del self._tasks[task_id]
            self.save()
