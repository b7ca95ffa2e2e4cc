"""Upload queue manager.

Schedules many upload tasks over a bounded number of concurrent transfers.
Tasks wait in a FIFO queue and are admitted to the chunk transfer engine
while fewer than ``concurrency`` are active. A finished or failed transfer
frees its slot and admits the next task. A paused transfer frees its slot
without admitting anything. A cancelled transfer frees its slot at once
and its later abort report is ignored.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from chunkup.core.exceptions import (
    ReconciliationFailure,
    TransferAborted,
    UploadError,
    UserCancelled,
)
from chunkup.core.logging import AuditLogger, get_audit_logger
from chunkup.models.api import FinalizeResult
from chunkup.models.task import HistoryEntry, TaskStatus, UploadTask
from chunkup.uploaders.constants import DEFAULT_CONCURRENCY
from chunkup.uploaders.engine import ChunkTransferEngine
from chunkup.uploaders.signals import AbortReason, AbortSignal, TransferRegistry

logger = logging.getLogger(__name__)

UpdateListener = Callable[[str, dict[str, Any]], None]
HistoryListener = Callable[[HistoryEntry], None]

ADMITTABLE = (TaskStatus.PENDING, TaskStatus.PAUSED)

# Fields rewritten by UploadTask.reset_for_retry
RETRY_RESET_FIELDS = (
    "uploaded_chunks",
    "session_id",
    "total_chunks",
    "status",
    "progress",
    "started_at",
    "paused_at",
    "paused_duration",
    "ended_at",
    "error",
)


@dataclass
class _Admission:
    """A task holding a concurrency slot, with the signal of its transfer."""

    task: UploadTask
    signal: AbortSignal


class UploadQueueManager:
    """Admission control and scheduling across upload tasks.

    All scheduling state is guarded by one re-entrant lock. Listeners are
    called while it is held and must not block or call back into blocking
    manager operations such as ``wait_idle``.

    Example:
        >>> manager = UploadQueueManager(engine, on_update=store.apply)
        >>> manager.enqueue(tasks)
        >>> manager.wait_idle()
    """

    def __init__(
        self,
        engine: ChunkTransferEngine,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        on_update: Optional[UpdateListener] = None,
        on_history: Optional[HistoryListener] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            engine: Engine that transfers single files.
            concurrency: Maximum number of transfers running at once.
            on_update: Called with ``(task_id, changes)`` after each task
                state change.
            on_history: Called once per task reaching completed or failed.
            audit: Audit logger for terminal outcomes.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1: {concurrency}")

        self.engine = engine
        self.concurrency = concurrency
        self.on_update = on_update
        self.on_history = on_history
        self.audit = audit or get_audit_logger()
        self.registry = TransferRegistry()

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._queue: deque[UploadTask] = deque()
        self._active: dict[str, _Admission] = {}
        self._closed = False
        # Cancelled transfers keep a worker until they notice the abort
        self._pool = ThreadPoolExecutor(
            max_workers=concurrency * 2,
            thread_name_prefix="chunkup-upload",
        )

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def is_active(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._active

    def is_queued(self, task_id: str) -> bool:
        with self._lock:
            return any(t.id == task_id for t in self._queue)

    # =========================================================================
    # Operations
    # =========================================================================

    def enqueue(self, tasks: Iterable[UploadTask]) -> int:
        """Queue tasks and start as many as the concurrency cap allows.

        Tasks that are already active or queued, or that are not pending or
        paused, are ignored.

        Returns:
            Number of tasks accepted.
        """
        with self._lock:
            self._check_open()
            accepted = 0
            for task in tasks:
                if task.id in self._active or self.is_queued(task.id):
                    logger.debug("Task %s is already scheduled", task.id)
                    continue
                if task.status not in ADMITTABLE:
                    logger.debug("Not queueing task %s in state %s", task.id, task.status.value)
                    continue
                self._queue.append(task)
                accepted += 1

            self._schedule()
            return accepted

    def pause(self, task_id: str) -> bool:
        """Pause a queued or running task.

        A queued task is dequeued and marked paused at once. A running task
        is signalled; it becomes paused when its transfer stops, and its slot
        stays empty until something else is enqueued or resumed.

        Returns:
            True if the task was found.
        """
        with self._lock:
            task = self._dequeue(task_id)
            if task is not None:
                self._update(task, status=TaskStatus.PAUSED, paused_at=time.time())
                self._changed.notify_all()
                return True

            if task_id in self._active:
                return self.engine.pause(task_id, self.registry)
            return False

    def cancel(self, task_id: str, session_id: Optional[str] = None) -> bool:
        """Cancel a task and discard its server session.

        A running task leaves the active set immediately and the next queued
        task is admitted. No history entry is recorded for it.

        Args:
            task_id: Task to cancel.
            session_id: Session to cancel on the server when the task is not
                known to the manager or has no session recorded.

        Returns:
            True if a task or session was cancelled.
        """
        with self._lock:
            task = self._dequeue(task_id)
            admission = self._active.pop(task_id, None)
            if admission is not None:
                task = admission.task

            session = session_id or (task.session_id if task is not None else None)
            if task is None and session is None:
                return False

            self.engine.cancel(task_id, session, self.registry)
            logger.info("Cancelled task %s", task_id)

            if admission is not None:
                self._schedule()
            else:
                self._changed.notify_all()
            return True

    def resume(self, task: UploadTask) -> bool:
        """Put a paused task back at the front of the queue.

        If the task has a session, its chunk state is first reconciled with
        the server; when that fails the in-memory state is used.

        Completed and failed tasks are not resumed; failed ones go through
        ``retry``.

        Returns:
            False if the task is already active, queued, completed or failed.
        """
        with self._lock:
            self._check_open()
            if task.id in self._active or self.is_queued(task.id):
                return False
            if task.status in (TaskStatus.COMPLETED, TaskStatus.ERROR):
                logger.debug("Not resuming %s task %s", task.status.value, task.id)
                return False

        if task.session_id:
            try:
                self.engine.reconcile(task)
            except ReconciliationFailure as e:
                logger.warning("Resuming %s from local state: %s", task.filename, e.reason)

        with self._lock:
            if task.id in self._active or self.is_queued(task.id):
                return False

            now = time.time()
            paused_duration = task.paused_duration
            if task.paused_at is not None:
                paused_duration += max(0.0, now - task.paused_at)

            self._update(
                task,
                status=TaskStatus.PENDING,
                paused_duration=paused_duration,
                paused_at=None,
                ended_at=None,
                error=None,
                session_id=task.session_id,
                total_chunks=task.total_chunks,
                uploaded_chunks=list(task.uploaded_chunks),
                progress=task.progress,
            )
            self._queue.appendleft(task)
            self._schedule()
            return True

    def retry(self, task: UploadTask) -> bool:
        """Restart a task from scratch with a new server session.

        The old session is cancelled on the server (best effort) and all
        chunk state is dropped, so nothing from the failed attempt is reused.

        Returns:
            False if the task is already active or queued.
        """
        with self._lock:
            self._check_open()
            if task.id in self._active or self.is_queued(task.id):
                return False

            old_session = task.session_id
            task.reset_for_retry()
            self._notify(task, {name: getattr(task, name) for name in RETRY_RESET_FIELDS})

        if old_session:
            self.engine.cancel(task.id, old_session, self.registry)
        return self.resume(task)

    def pause_all(self) -> int:
        """Pause every queued and running task.

        Returns:
            Number of tasks signalled or paused.
        """
        with self._lock:
            task_ids = [t.id for t in self._queue] + list(self._active)
            return sum(1 for task_id in task_ids if self.pause(task_id))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is running or queued.

        Returns:
            True if idle, False on timeout.
        """
        with self._changed:
            return self._changed.wait_for(
                lambda: not self._active and not self._queue,
                timeout,
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the worker threads."""
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "UploadQueueManager":
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Upload queue manager is shut down")

    def _dequeue(self, task_id: str) -> Optional[UploadTask]:
        for task in self._queue:
            if task.id == task_id:
                self._queue.remove(task)
                return task
        return None

    def _schedule(self) -> None:
        """Admit queued tasks while slots are free."""
        while len(self._active) < self.concurrency and self._queue and not self._closed:
            task = self._queue.popleft()
            if task.status not in ADMITTABLE:
                logger.debug("Skipping task %s in state %s", task.id, task.status.value)
                continue
            self._admit(task)
        self._changed.notify_all()

    def _admit(self, task: UploadTask) -> None:
        signal = self.registry.open(task.id)
        if signal.aborted:
            # Left behind by a cancelled transfer that is still unwinding
            self.registry.release(task.id, signal)
            signal = self.registry.open(task.id)

        self._active[task.id] = _Admission(task, signal)
        self._update(task, status=TaskStatus.UPLOADING, paused_at=None)
        logger.debug("Admitted task %s (%d/%d active)", task.id, len(self._active), self.concurrency)
        self._pool.submit(self._run, task, signal)

    def _run(self, task: UploadTask, signal: AbortSignal) -> None:
        """Worker body: one engine transfer for one admission."""
        if signal.aborted:
            self.registry.release(task.id, signal)
            self._handle_error(task, signal, signal.error(task.id))
            return

        self.engine.transfer(
            task,
            registry=self.registry,
            signal=signal,
            on_progress=lambda progress, chunks: self._handle_progress(
                task, signal, progress, chunks
            ),
            on_finalizing=lambda: self._handle_finalizing(task, signal),
            on_error=lambda error: self._handle_error(task, signal, error),
            on_complete=lambda result: self._handle_complete(task, signal, result),
        )

    def _is_current(self, task: UploadTask, signal: AbortSignal) -> bool:
        admission = self._active.get(task.id)
        return admission is not None and admission.signal is signal

    # =========================================================================
    # Engine Events
    # =========================================================================

    def _handle_progress(
        self,
        task: UploadTask,
        signal: AbortSignal,
        progress: float,
        chunks: list[int],
    ) -> None:
        with self._lock:
            if not self._is_current(task, signal):
                return
            self._update(
                task,
                progress=max(task.progress, progress),
                uploaded_chunks=chunks,
                total_chunks=task.total_chunks,
                session_id=task.session_id,
            )

    def _handle_finalizing(self, task: UploadTask, signal: AbortSignal) -> None:
        with self._lock:
            if self._is_current(task, signal):
                self._update(task, status=TaskStatus.FINALIZING)

    def _handle_complete(
        self,
        task: UploadTask,
        signal: AbortSignal,
        result: FinalizeResult,
    ) -> None:
        with self._lock:
            if not self._is_current(task, signal):
                logger.info("Ignoring completion of cancelled task %s", task.id)
                return

            del self._active[task.id]
            self._update(
                task,
                status=TaskStatus.COMPLETED,
                progress=100.0,
                ended_at=time.time(),
                error=None,
            )
            self._record(task, "completed", file_path=result.file_path, result=result)
            self._schedule()

    def _handle_error(self, task: UploadTask, signal: AbortSignal, error: UploadError) -> None:
        with self._lock:
            if not self._is_current(task, signal):
                # Cancelled through the manager: slot already freed
                logger.debug("Absorbed %s for task %s", error.reason, task.id)
                return

            del self._active[task.id]

            # The abort request wins over whatever error the attempt ended with
            reason = signal.reason
            if reason is AbortReason.CANCELLED or isinstance(error, UserCancelled):
                self._schedule()
                return

            if reason is AbortReason.PAUSED or isinstance(error, TransferAborted):
                self._update(task, status=TaskStatus.PAUSED, paused_at=time.time())
                self._changed.notify_all()
                return

            self._update(
                task,
                status=TaskStatus.ERROR,
                error=error.reason,
                ended_at=time.time(),
            )
            self._record(task, "failed")
            self._schedule()

    # =========================================================================
    # Listeners
    # =========================================================================

    def _update(self, task: UploadTask, **changes: Any) -> None:
        """Apply changes to a task and report them to the update listener."""
        for name, value in changes.items():
            setattr(task, name, value)
        self._notify(task, changes)

    def _notify(self, task: UploadTask, changes: dict[str, Any]) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(task.id, changes)
        except Exception:
            logger.exception("Update listener failed for task %s", task.id)

    def _record(
        self,
        task: UploadTask,
        status: str,
        *,
        file_path: Optional[str] = None,
        result: Optional[FinalizeResult] = None,
    ) -> None:
        """Emit the history entry and audit record of a terminal outcome."""
        entry = HistoryEntry.for_task(
            task,
            status,
            file_path=file_path,
            is_duplicate=bool(result and result.is_duplicate),
        )
        if self.on_history is not None:
            try:
                self.on_history(entry)
            except Exception:
                logger.exception("History listener failed for task %s", task.id)

        self.audit.log_upload(
            task.id,
            filename=task.filename,
            size=task.size,
            session_id=task.session_id,
            success=status == "completed",
            duration=entry.duration,
            details={"error": task.error} if task.error else None,
        )
