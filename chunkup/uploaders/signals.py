"""Cooperative abort signals for in-flight transfers.

An ``AbortSignal`` carries *why* a transfer was stopped together with the
stop itself, so whoever observes the abort later (possibly on another
thread) can tell a pause from a cancellation without consulting shared
state. ``TransferRegistry`` maps task IDs to the signal of their current
transfer; the queue manager owns one and hands it to the engine per call.
"""

from __future__ import annotations

import threading
from enum import Enum

from chunkup.core.exceptions import TransferAborted, UserCancelled, UserPaused


class AbortReason(Enum):
    """Why a transfer was asked to stop."""

    NONE = "none"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class AbortSignal:
    """Thread-safe, one-way abort flag tagged with a reason.

    The reason is recorded before the flag is raised. A cancellation
    overrides an earlier pause that has not been observed yet; a pause never
    downgrades a cancellation.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = AbortReason.NONE

    @property
    def reason(self) -> AbortReason:
        with self._lock:
            return self._reason

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: AbortReason) -> None:
        """Record the reason, then raise the flag."""
        if reason is AbortReason.NONE:
            raise ValueError("abort() needs a PAUSED or CANCELLED reason")
        with self._lock:
            if self._reason is not AbortReason.CANCELLED:
                self._reason = reason
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on abort.

        Returns:
            True if the signal was aborted before or during the wait.
        """
        return self._event.wait(timeout)

    def error(self, task_id: str | None = None) -> TransferAborted:
        """Build the exception that reports this abort."""
        if self.reason is AbortReason.CANCELLED:
            return UserCancelled(task_id=task_id)
        if self.reason is AbortReason.PAUSED:
            return UserPaused(task_id=task_id)
        return TransferAborted(task_id=task_id)

    def raise_if_aborted(self, task_id: str | None = None) -> None:
        """Raise ``UserPaused``/``UserCancelled`` if the signal fired."""
        if self.aborted:
            raise self.error(task_id)


class TransferRegistry:
    """Task ID → abort signal of the transfer currently running for it."""

    def __init__(self) -> None:
        self._signals: dict[str, AbortSignal] = {}
        self._lock = threading.Lock()

    def open(self, task_id: str) -> AbortSignal:
        """Return the live signal for a task, creating one if needed."""
        with self._lock:
            signal = self._signals.get(task_id)
            if signal is None:
                signal = AbortSignal()
                self._signals[task_id] = signal
            return signal

    def get(self, task_id: str) -> AbortSignal | None:
        with self._lock:
            return self._signals.get(task_id)

    def abort(self, task_id: str, reason: AbortReason) -> bool:
        """Abort the task's transfer if one is registered.

        Returns:
            True if a live transfer was signalled.
        """
        with self._lock:
            signal = self._signals.get(task_id)
        if signal is None:
            return False
        signal.abort(reason)
        return True

    def release(self, task_id: str, signal: AbortSignal | None = None) -> None:
        """Forget a task's signal.

        When ``signal`` is given, the entry is only removed if it is still
        that signal, so a finished transfer cannot drop the signal of a newer
        admission of the same task.
        """
        with self._lock:
            current = self._signals.get(task_id)
            if current is None:
                return
            if signal is None or current is signal:
                del self._signals[task_id]

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._signals

    def __len__(self) -> int:
        with self._lock:
            return len(self._signals)
