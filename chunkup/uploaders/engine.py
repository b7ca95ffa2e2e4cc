"""Chunk transfer engine.

Transfers one file to one server-side upload session: opens the session,
reconciles local chunk state with the server, sends missing chunks in order
with per-chunk retry, fills any gaps the server still reports, and
finalizes. Pause and cancel are cooperative through the task's
``AbortSignal``.

This is an internal implementation detail. Use `UploadQueueManager` from
`chunkup.services.queue` as the public API.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Optional

from chunkup.core.client import UploadClient
from chunkup.core.exceptions import (
    ChunkupError,
    FinalizationFailure,
    ReconciliationFailure,
    SessionInitiationFailure,
    TransferAborted,
    UploadError,
    UserCancelled,
)
from chunkup.core.logging import log_context
from chunkup.models.api import FinalizeResult, SessionStatus
from chunkup.models.task import UploadTask
from chunkup.uploaders.common import (
    pending_chunks,
    progress_percent,
    read_chunk,
    send_with_retry,
    uploaded_from_missing,
)
from chunkup.uploaders.constants import MAX_CHUNK_RETRIES, RETRY_DELAY_BASE, SETTLE_DELAY
from chunkup.uploaders.signals import AbortReason, AbortSignal, TransferRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, list[int]], None]
ErrorCallback = Callable[[UploadError], None]
CompleteCallback = Callable[[FinalizeResult], None]


class TransferOutcome(Enum):
    """How a ``transfer`` call ended; mirrors the callback it invoked."""

    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


def _outcome_for(error: UploadError) -> TransferOutcome:
    if isinstance(error, UserCancelled):
        return TransferOutcome.CANCELLED
    if isinstance(error, TransferAborted):
        return TransferOutcome.PAUSED
    return TransferOutcome.FAILED


# =============================================================================
# Engine
# =============================================================================


class ChunkTransferEngine:
    """Drives the chunk transfer of single files.

    The engine keeps no per-task state between calls. Abort signals live in
    the ``TransferRegistry`` the caller passes in, and all chunk state lives
    on the ``UploadTask``.
    """

    def __init__(
        self,
        client: UploadClient,
        *,
        max_retries: int = MAX_CHUNK_RETRIES,
        retry_delay_base: float = RETRY_DELAY_BASE,
        settle_delay: float = SETTLE_DELAY,
        requester_id: Optional[str] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Upload API client.
            max_retries: Attempts per chunk after the first one.
            retry_delay_base: First backoff delay in seconds; doubles per retry.
            settle_delay: Wait between the last chunk and finalize.
            requester_id: Identity sent with finalize requests.
        """
        self.client = client
        self.max_retries = max_retries
        self.retry_delay_base = retry_delay_base
        self.settle_delay = settle_delay
        self.requester_id = requester_id

    # =========================================================================
    # Transfer
    # =========================================================================

    def transfer(
        self,
        task: UploadTask,
        *,
        registry: TransferRegistry,
        signal: Optional[AbortSignal] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_finalizing: Optional[Callable[[], None]] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> TransferOutcome:
        """Upload a task's file, resuming its session if it has one.

        Exactly one of ``on_error`` and ``on_complete`` is called. Pauses and
        cancellations reach ``on_error`` as ``UserPaused``/``UserCancelled``,
        also when a request fails after the pause or cancel was raised.

        Args:
            task: Task to transfer. Its chunk state is updated in place.
            registry: Registry holding the task's abort signal.
            signal: Signal to observe; defaults to the one registered for
                the task (created if missing).
            on_progress: Called with ``(progress, uploaded_chunks)`` after
                each confirmed chunk.
            on_finalizing: Called right before the finalize request.
            on_error: Called with the failure or abort.
            on_complete: Called with the finalize result.

        Returns:
            The outcome matching the callback that was invoked.
        """
        signal = signal or registry.open(task.id)
        error: UploadError

        try:
            with log_context(
                "transfer",
                logger,
                expected=(TransferAborted,),
                task=task.id,
                file=task.filename,
            ):
                result = self._transfer(task, signal, on_progress, on_finalizing)
        except UploadError as e:
            error = e
        except OSError as e:
            error = UploadError(f"Cannot read {task.source}: {e.strerror or e}", task_id=task.id)
        except Exception as e:
            logger.exception("Unexpected error uploading %s", task.filename)
            error = UploadError(str(e) or None, task_id=task.id)
        else:
            registry.release(task.id, signal)
            if on_complete:
                on_complete(result)
            return TransferOutcome.COMPLETED

        # A pause or cancel requested before the failure decides the outcome
        if signal.aborted and not isinstance(error, TransferAborted):
            logger.info(
                "%s failed after a %s request: %s", task.filename, signal.reason.value, error.reason
            )
            error = signal.error(task.id)

        registry.release(task.id, signal)
        if on_error:
            on_error(error)
        return _outcome_for(error)

    def _transfer(
        self,
        task: UploadTask,
        signal: AbortSignal,
        on_progress: Optional[ProgressCallback],
        on_finalizing: Optional[Callable[[], None]],
    ) -> FinalizeResult:
        signal.raise_if_aborted(task.id)

        session_id = task.session_id or self._open_session(task, signal)

        try:
            self.reconcile(task)
        except ReconciliationFailure as e:
            logger.warning("Using local chunk state for %s: %s", task.filename, e.reason)

        for index in pending_chunks(task.total_chunks, task.uploaded_chunks):
            self._send_chunk(task, session_id, index, signal, on_progress)

        # Fill chunks the server still lacks
        for index in self._missing_on_server(task, session_id):
            self._send_chunk(task, session_id, index, signal, on_progress)

        if signal.wait(self.settle_delay):
            raise signal.error(task.id)

        if on_finalizing:
            on_finalizing()
        signal.raise_if_aborted(task.id)

        try:
            result = self.client.finalize(session_id, self.requester_id)
        except ChunkupError as e:
            raise FinalizationFailure(session_id, e, task_id=task.id) from e

        task.progress = 100.0
        if result.is_duplicate:
            logger.info("%s was already stored on the server as %s", task.filename, result.file_path)
        return result

    def _open_session(self, task: UploadTask, signal: AbortSignal) -> str:
        """Initiate a server session and store its ID on the task."""
        try:
            session_id = self.client.initiate(
                task.filename,
                task.size,
                task.mime_type,
                task.total_chunks,
                task.content_hash,
            )
        except ChunkupError as e:
            raise SessionInitiationFailure(e, task_id=task.id) from e

        task.session_id = session_id
        logger.debug("Opened session %s for %s", session_id, task.filename)

        # A cancel that arrived while initiating could not name the session
        if signal.reason is AbortReason.CANCELLED:
            self._start_remote_cancel(session_id)
            raise signal.error(task.id)
        return session_id

    def _send_chunk(
        self,
        task: UploadTask,
        session_id: str,
        index: int,
        signal: AbortSignal,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        data = read_chunk(task.source, index, task.size, task.chunk_size)

        send_with_retry(
            lambda: self.client.upload_chunk(session_id, index, data),
            signal=signal,
            chunk_index=index,
            task_id=task.id,
            max_retries=self.max_retries,
            backoff_base=self.retry_delay_base,
            label=f"{task.filename} chunk {index}",
        )

        progress = task.mark_uploaded(index)
        if on_progress:
            on_progress(progress, list(task.uploaded_chunks))

    def _missing_on_server(self, task: UploadTask, session_id: str) -> list[int]:
        """Chunks the server reports missing after the local pass."""
        try:
            status = self.client.get_status(session_id)
        except ChunkupError as e:
            logger.warning("Could not re-check %s before finalizing: %s", task.filename, e)
            return []

        missing = sorted({i for i in status.missing_chunks if 0 <= i < task.total_chunks})
        if missing:
            logger.info("Server still lacks %d chunk(s) of %s", len(missing), task.filename)
            task.uploaded_chunks = [i for i in task.uploaded_chunks if i not in missing]
        return missing

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(self, task: UploadTask) -> SessionStatus:
        """Align a task's chunk state with its server session.

        The server's chunk count always replaces the local one. The server's
        chunk list replaces the local list only when that does not lower the
        recorded progress, or when nothing was uploaded locally.

        Returns:
            The server-reported session status.

        Raises:
            ReconciliationFailure: If the task has no session or the status
                could not be fetched.
        """
        if not task.session_id:
            raise ReconciliationFailure(
                "", ChunkupError("Task has no upload session"), task_id=task.id
            )

        try:
            status = self.client.get_status(task.session_id)
        except ChunkupError as e:
            raise ReconciliationFailure(task.session_id, e, task_id=task.id) from e

        if status.total_chunks > 0:
            task.total_chunks = status.total_chunks

        server_uploaded = uploaded_from_missing(task.total_chunks, status.missing_chunks)
        server_progress = progress_percent(len(server_uploaded), task.total_chunks)

        if not task.uploaded_chunks or server_progress >= task.progress:
            task.uploaded_chunks = server_uploaded
        else:
            logger.debug(
                "Keeping local chunk state for %s (server %.1f%% < local %.1f%%)",
                task.filename,
                server_progress,
                task.progress,
            )
            task.uploaded_chunks = [i for i in task.uploaded_chunks if i < task.total_chunks]

        task.progress = max(task.progress, task.computed_progress)
        return status

    # =========================================================================
    # Pause / Cancel
    # =========================================================================

    def pause(self, task_id: str, registry: TransferRegistry) -> bool:
        """Stop a running transfer, keeping its session and chunk state.

        Returns:
            True if a running transfer was signalled.
        """
        return registry.abort(task_id, AbortReason.PAUSED)

    def cancel(
        self,
        task_id: str,
        session_id: Optional[str],
        registry: TransferRegistry,
    ) -> Optional[threading.Thread]:
        """Stop a running transfer and discard its server session.

        The server-side cancel runs on a background thread and is never
        retried; failures are only logged.

        Returns:
            The background thread, or None if there was no session to cancel.
        """
        registry.abort(task_id, AbortReason.CANCELLED)
        if not session_id:
            return None
        return self._start_remote_cancel(session_id)

    def _start_remote_cancel(self, session_id: str) -> threading.Thread:
        thread = threading.Thread(
            target=self._cancel_remote,
            args=(session_id,),
            name=f"cancel-{session_id}",
            daemon=True,
        )
        thread.start()
        return thread

    def _cancel_remote(self, session_id: str) -> None:
        try:
            self.client.cancel(session_id)
        except ChunkupError as e:
            logger.warning("Failed to cancel session %s on the server: %s", session_id, e)
        else:
            logger.debug("Cancelled session %s on the server", session_id)
