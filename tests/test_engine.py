"""Tests for chunkup.uploaders.engine."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeUploadServer, RecordingSignal, make_task, wait_until

from chunkup.core.exceptions import (
    ApiError,
    FinalizationFailure,
    NetworkError,
    ReconciliationFailure,
    SessionInitiationFailure,
    TerminalChunkFailure,
    UserCancelled,
    UserPaused,
)
from chunkup.models.task import UploadTask
from chunkup.uploaders.engine import ChunkTransferEngine, TransferOutcome
from chunkup.uploaders.signals import AbortReason, TransferRegistry


@pytest.fixture
def engine(fake_server: FakeUploadServer) -> ChunkTransferEngine:
    return ChunkTransferEngine(fake_server, settle_delay=0)


@pytest.fixture
def registry() -> TransferRegistry:
    return TransferRegistry()


# =============================================================================
# Happy Path
# =============================================================================


class TestTransfer:
    """Tests for a transfer that runs to completion."""

    def test_uploads_all_chunks_in_order_and_finalizes(
        self, engine, fake_server, registry, sample_file: Path
    ):
        task = make_task(sample_file)
        results = []

        outcome = engine.transfer(task, registry=registry, on_complete=results.append)

        assert outcome == TransferOutcome.COMPLETED
        assert [i for _, i in fake_server.chunk_calls] == list(range(10))
        assert task.uploaded_chunks == list(range(10))
        assert task.progress == 100.0
        assert len(results) == 1
        assert results[0].file_path == "/uploads/clip.mp4"
        assert fake_server.finalized == [(task.session_id, None)]
        assert len(registry) == 0

    def test_initiate_receives_file_metadata(self, fake_server, registry, sample_file: Path):
        engine = ChunkTransferEngine(fake_server, settle_delay=0)
        task = make_task(sample_file)
        task.content_hash = "abc123"

        engine.transfer(task, registry=registry)

        assert fake_server.initiated == [
            {
                "filename": "clip.mp4",
                "size": 40,
                "mime_type": "video/mp4",
                "total_chunks": 10,
                "content_hash": "abc123",
            }
        ]

    def test_sends_exact_byte_ranges(self, engine, fake_server, registry, temp_dir: Path):
        path = temp_dir / "odd.mp4"
        path.write_bytes(b"abcdefghij")
        task = make_task(path, chunk_size=4)
        sent: dict[int, bytes] = {}
        original = fake_server.upload_chunk

        def capture(session_id, index, data):
            sent[index] = data
            return original(session_id, index, data)

        fake_server.upload_chunk = capture

        engine.transfer(task, registry=registry)

        assert sent == {0: b"abcd", 1: b"efgh", 2: b"ij"}

    def test_progress_is_reported_after_each_chunk_and_never_decreases(
        self, engine, registry, sample_file: Path
    ):
        task = make_task(sample_file)
        updates: list[tuple[float, list[int]]] = []

        engine.transfer(
            task, registry=registry, on_progress=lambda p, chunks: updates.append((p, chunks))
        )

        values = [p for p, _ in updates]
        assert len(updates) == 10
        assert values == sorted(values)
        assert values[-1] == 100.0
        assert updates[4][1] == [0, 1, 2, 3, 4]

    def test_finalizing_callback_precedes_finalize(
        self, engine, fake_server, registry, sample_file: Path
    ):
        events: list[str] = []
        original = fake_server.finalize

        def finalize(session_id, requester_id=None):
            events.append("finalize")
            return original(session_id, requester_id)

        fake_server.finalize = finalize

        engine.transfer(
            make_task(sample_file),
            registry=registry,
            on_finalizing=lambda: events.append("finalizing"),
            on_complete=lambda result: events.append("complete"),
        )

        assert events == ["finalizing", "finalize", "complete"]

    def test_requester_id_is_sent_with_finalize(self, fake_server, registry, sample_file: Path):
        engine = ChunkTransferEngine(fake_server, settle_delay=0, requester_id="alice")
        task = make_task(sample_file)

        engine.transfer(task, registry=registry)

        assert fake_server.finalized == [(task.session_id, "alice")]

    def test_empty_file_is_one_chunk(self, engine, fake_server, registry, temp_dir: Path):
        path = temp_dir / "empty.mp4"
        path.write_bytes(b"")
        task = make_task(path)

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.COMPLETED
        assert task.total_chunks == 1
        assert [i for _, i in fake_server.chunk_calls] == [0]

    def test_refills_chunks_server_still_reports_missing(
        self, engine, fake_server, registry, sample_file: Path
    ):
        fake_server.dropped_once = {3}
        task = make_task(sample_file)

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.COMPLETED
        indices = [i for _, i in fake_server.chunk_calls]
        assert indices == list(range(10)) + [3]


# =============================================================================
# Resume and Reconciliation
# =============================================================================


class TestResume:
    """Tests for resuming a transfer on an existing session."""

    def test_resume_uploads_only_missing_chunks(
        self, engine, fake_server, registry, sample_file: Path
    ):
        session_id = fake_server.add_session(10, set(range(5)), "clip.mp4")
        task = make_task(sample_file)
        task.session_id = session_id
        task.uploaded_chunks = [0, 1, 2, 3, 4]
        task.progress = 50.0

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.COMPLETED
        assert fake_server.initiated == []
        assert fake_server.chunk_calls == [(session_id, i) for i in range(5, 10)]
        assert fake_server.finalized == [(session_id, None)]

    def test_pause_then_resume_keeps_session_and_chunks(
        self, engine, fake_server, registry, sample_file: Path
    ):
        task = make_task(sample_file)

        def pause_on_third(session_id, index):
            if index == 2:
                engine.pause(task.id, registry)

        fake_server.chunk_hook = pause_on_third
        errors = []

        outcome = engine.transfer(task, registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.PAUSED
        assert isinstance(errors[0], UserPaused)
        assert task.uploaded_chunks == [0, 1, 2]
        session_id = task.session_id
        assert session_id is not None
        assert len(registry) == 0

        fake_server.chunk_hook = None
        fake_server.chunk_calls.clear()

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.COMPLETED
        assert task.session_id == session_id
        assert [i for _, i in fake_server.chunk_calls] == list(range(3, 10))

    def test_reconcile_failure_falls_back_to_local_state(
        self, engine, fake_server, registry, sample_file: Path
    ):
        session_id = fake_server.add_session(10, set(range(5)), "clip.mp4")
        fake_server.status_error = NetworkError(fake_server.base_url, "timeout")
        task = make_task(sample_file)
        task.session_id = session_id
        task.uploaded_chunks = [0, 1, 2, 3, 4]
        task.progress = 50.0

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.COMPLETED
        assert [i for _, i in fake_server.chunk_calls] == [5, 6, 7, 8, 9]


class TestReconcile:
    """Tests for ChunkTransferEngine.reconcile."""

    def test_server_state_replaces_empty_local_state(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = fake_server.add_session(10, {0, 1, 2, 3})

        engine.reconcile(task)

        assert task.uploaded_chunks == [0, 1, 2, 3]
        assert task.progress == 40.0

    def test_lower_server_progress_keeps_local_state(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = fake_server.add_session(10, {0, 1})
        task.uploaded_chunks = [0, 1, 2, 3, 4, 5]
        task.progress = 60.0

        engine.reconcile(task)

        assert task.uploaded_chunks == [0, 1, 2, 3, 4, 5]
        assert task.progress == 60.0

    def test_higher_server_progress_replaces_local_state(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = fake_server.add_session(10, set(range(8)))
        task.uploaded_chunks = [0, 1]
        task.progress = 20.0

        engine.reconcile(task)

        assert task.uploaded_chunks == list(range(8))
        assert task.progress == 80.0

    def test_server_total_overrides_local_count(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = fake_server.add_session(8, {0, 1})

        engine.reconcile(task)

        assert task.total_chunks == 8
        assert task.progress == 25.0

    def test_progress_never_decreases(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = fake_server.add_session(10, set())
        task.uploaded_chunks = [0, 1, 2]
        task.progress = 30.0

        engine.reconcile(task)

        assert task.progress == 30.0

    def test_raises_without_session(self, engine, sample_file):
        task = make_task(sample_file)

        with pytest.raises(ReconciliationFailure):
            engine.reconcile(task)

    def test_raises_when_status_unavailable(self, engine, fake_server, sample_file):
        task = make_task(sample_file)
        task.session_id = "sess-gone"

        with pytest.raises(ReconciliationFailure) as excinfo:
            engine.reconcile(task)

        assert excinfo.value.session_id == "sess-gone"


# =============================================================================
# Retry
# =============================================================================


class TestChunkRetry:
    """Tests for per-chunk retry inside a transfer."""

    def test_four_failed_attempts_end_in_terminal_failure(
        self, engine, fake_server, registry, sample_file: Path
    ):
        error = NetworkError(fake_server.base_url, "connection reset")
        fake_server.chunk_failures[0] = [error, error, error, error]
        signal = RecordingSignal()
        errors = []

        outcome = engine.transfer(
            make_task(sample_file), registry=registry, signal=signal, on_error=errors.append
        )

        assert outcome == TransferOutcome.FAILED
        assert isinstance(errors[0], TerminalChunkFailure)
        assert errors[0].attempts == 4
        assert errors[0].chunk_index == 0
        assert signal.waits == [1.0, 2.0, 4.0]
        assert sum(signal.waits) >= 7
        assert [i for _, i in fake_server.chunk_calls] == [0, 0, 0, 0]
        assert fake_server.finalized == []

    def test_transient_errors_are_retried_until_success(
        self, engine, fake_server, registry, sample_file: Path
    ):
        fake_server.chunk_failures[4] = [ApiError(503), ApiError(429, "Slow down")]
        signal = RecordingSignal()

        outcome = engine.transfer(make_task(sample_file), registry=registry, signal=signal)

        assert outcome == TransferOutcome.COMPLETED
        assert signal.waits[:2] == [1.0, 2.0]
        assert [i for _, i in fake_server.chunk_calls].count(4) == 3

    def test_client_error_is_not_retried(self, engine, fake_server, registry, sample_file: Path):
        fake_server.chunk_failures[1] = [ApiError(400, "Invalid chunk index")]
        signal = RecordingSignal()
        errors = []

        outcome = engine.transfer(
            make_task(sample_file), registry=registry, signal=signal, on_error=errors.append
        )

        assert outcome == TransferOutcome.FAILED
        assert isinstance(errors[0], TerminalChunkFailure)
        assert errors[0].attempts == 1
        assert errors[0].reason == "Invalid chunk index"
        assert signal.waits == []

    def test_abort_during_backoff_stops_immediately(
        self, engine, fake_server, registry, sample_file: Path
    ):
        class PausingSignal(RecordingSignal):
            def wait(self, timeout: float) -> bool:
                self.waits.append(timeout)
                self.abort(AbortReason.PAUSED)
                return True

        error = NetworkError(fake_server.base_url, "reset")
        fake_server.chunk_failures[0] = [error, error, error, error]
        signal = PausingSignal()
        errors = []

        outcome = engine.transfer(
            make_task(sample_file), registry=registry, signal=signal, on_error=errors.append
        )

        assert outcome == TransferOutcome.PAUSED
        assert isinstance(errors[0], UserPaused)
        assert len(fake_server.chunk_calls) == 1


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Tests for failures outside the chunk loop."""

    def test_initiate_failure_sends_no_chunks(
        self, engine, fake_server, registry, sample_file: Path
    ):
        fake_server.initiate_error = ApiError(400, "Invalid file type")
        task = make_task(sample_file)
        errors = []

        outcome = engine.transfer(task, registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.FAILED
        assert isinstance(errors[0], SessionInitiationFailure)
        assert errors[0].reason == "Invalid file type"
        assert fake_server.chunk_calls == []
        assert task.session_id is None

    def test_finalize_failure_reports_server_message(
        self, engine, fake_server, registry, sample_file: Path
    ):
        fake_server.finalize_error = ApiError(400, "Missing chunks: [7]")
        errors = []
        completed = []

        outcome = engine.transfer(
            make_task(sample_file),
            registry=registry,
            on_error=errors.append,
            on_complete=completed.append,
        )

        assert outcome == TransferOutcome.FAILED
        assert isinstance(errors[0], FinalizationFailure)
        assert errors[0].reason == "Missing chunks: [7]"
        assert completed == []

    def test_generic_reason_without_server_message(
        self, engine, fake_server, registry, sample_file: Path
    ):
        fake_server.finalize_error = ApiError(500)
        errors = []

        engine.transfer(make_task(sample_file), registry=registry, on_error=errors.append)

        assert errors[0].reason == "HTTP 500"

    def test_missing_source_file_fails(self, engine, registry, temp_dir: Path):
        path = temp_dir / "gone.mp4"
        path.write_bytes(b"12345678")
        task = make_task(path)
        path.unlink()
        errors = []

        outcome = engine.transfer(task, registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.FAILED
        assert "Cannot read" in errors[0].reason


# =============================================================================
# Cancel
# =============================================================================


class TestCancel:
    """Tests for cancellation."""

    def test_cancel_stops_transfer_and_cancels_session(
        self, engine, fake_server, registry, sample_file: Path
    ):
        task = make_task(sample_file)
        threads = []

        def cancel_on_second(session_id, index):
            if index == 1:
                threads.append(engine.cancel(task.id, session_id, registry))

        fake_server.chunk_hook = cancel_on_second
        errors = []

        outcome = engine.transfer(task, registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.CANCELLED
        assert isinstance(errors[0], UserCancelled)
        threads[0].join(timeout=2)
        assert fake_server.cancelled == [task.session_id]
        assert fake_server.finalized == []

    def test_cancel_overrides_pending_pause(self, engine, fake_server, registry, sample_file):
        task = make_task(sample_file)

        def pause_then_cancel(session_id, index):
            if index == 0:
                engine.pause(task.id, registry)
                engine.cancel(task.id, None, registry)

        fake_server.chunk_hook = pause_then_cancel

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.CANCELLED

    def test_cancel_during_initiate_discards_new_session(
        self, engine, fake_server, registry, sample_file: Path
    ):
        task = make_task(sample_file)
        original = fake_server.initiate

        def initiate(*args, **kwargs):
            session_id = original(*args, **kwargs)
            registry.abort(task.id, AbortReason.CANCELLED)
            return session_id

        fake_server.initiate = initiate

        outcome = engine.transfer(task, registry=registry)

        assert outcome == TransferOutcome.CANCELLED
        assert wait_until(lambda: fake_server.cancelled == [task.session_id])
        assert fake_server.chunk_calls == []

    def test_cancel_without_session_starts_no_thread(self, engine, registry):
        assert engine.cancel("t1", None, registry) is None

    def test_server_cancel_failure_is_only_logged(self, engine, fake_server, registry, caplog):
        fake_server.cancel_error = ApiError(404, "Upload not found")

        thread = engine.cancel("t1", "sess-x", registry)
        thread.join(timeout=2)

        assert fake_server.cancelled == ["sess-x"]
        assert "Failed to cancel session sess-x" in caplog.text

    def test_pause_without_running_transfer_returns_false(self, engine, registry):
        assert engine.pause("nope", registry) is False


class TestAbortDuringFailure:
    """A pause or cancel raised while a request fails is not a failure."""

    def test_pause_during_rejected_chunk(self, engine, fake_server, registry, sample_file):
        task = make_task(sample_file)

        def pause_on_third(session_id, index):
            if index == 2:
                engine.pause(task.id, registry)

        fake_server.chunk_hook = pause_on_third
        fake_server.chunk_failures[2] = [ApiError(400, "Invalid chunk index")]
        errors = []

        outcome = engine.transfer(task, registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.PAUSED
        assert len(errors) == 1
        assert isinstance(errors[0], UserPaused)
        assert task.uploaded_chunks == [0, 1]
        assert task.session_id is not None
        assert len(registry) == 0

    def test_cancel_during_last_attempt(self, engine, fake_server, registry, sample_file):
        error = NetworkError(fake_server.base_url, "connection reset")
        fake_server.chunk_failures[0] = [error, error, error, error]
        signal = RecordingSignal()
        calls = []

        def cancel_on_last(session_id, index):
            calls.append(index)
            if len(calls) == 4:
                signal.abort(AbortReason.CANCELLED)

        fake_server.chunk_hook = cancel_on_last
        errors = []

        outcome = engine.transfer(
            make_task(sample_file), registry=registry, signal=signal, on_error=errors.append
        )

        assert outcome == TransferOutcome.CANCELLED
        assert isinstance(errors[0], UserCancelled)
        assert signal.waits == [1.0, 2.0, 4.0]

    def test_cancel_during_failed_initiate(self, engine, fake_server, registry, sample_file):
        signal = RecordingSignal()

        def initiate(*args, **kwargs):
            signal.abort(AbortReason.CANCELLED)
            raise NetworkError(fake_server.base_url, "timed out")

        fake_server.initiate = initiate
        errors = []

        outcome = engine.transfer(
            make_task(sample_file), registry=registry, signal=signal, on_error=errors.append
        )

        assert outcome == TransferOutcome.CANCELLED
        assert isinstance(errors[0], UserCancelled)
        assert fake_server.chunk_calls == []

    def test_pause_during_failed_finalize(self, engine, fake_server, registry, sample_file):
        signal = RecordingSignal()

        def finalize(session_id, requester_id=None):
            signal.abort(AbortReason.PAUSED)
            raise ApiError(500, "Storage unavailable")

        fake_server.finalize = finalize
        task = make_task(sample_file)
        errors = []

        outcome = engine.transfer(task, registry=registry, signal=signal, on_error=errors.append)

        assert outcome == TransferOutcome.PAUSED
        assert isinstance(errors[0], UserPaused)
        assert task.uploaded_chunks == list(range(10))

    def test_failure_without_abort_is_still_reported(
        self, engine, fake_server, registry, sample_file
    ):
        fake_server.finalize_error = ApiError(500, "Storage unavailable")
        errors = []

        outcome = engine.transfer(make_task(sample_file), registry=registry, on_error=errors.append)

        assert outcome == TransferOutcome.FAILED
        assert isinstance(errors[0], FinalizationFailure)


def test_transfer_uses_task_from_dict_roundtrip(engine, fake_server, registry, sample_file):
    task = UploadTask.from_dict(make_task(sample_file).to_dict())

    assert engine.transfer(task, registry=registry) == TransferOutcome.COMPLETED
