"""Pytest configuration and fixtures for chunkup tests."""

from __future__ import annotations

import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Generator, Optional

import pytest

from chunkup.core.exceptions import ResourceNotFoundError
from chunkup.models.api import (
    ChunkReceipt,
    FinalizeResult,
    HealthStatus,
    MonitoringStats,
    SessionStatus,
)
from chunkup.models.task import UploadTask
from chunkup.uploaders.signals import AbortSignal

# =============================================================================
# Fakes
# =============================================================================


class FakeUploadServer:
    """In-memory stand-in for UploadClient.

    Sessions store received chunk indices. Failures are injected per chunk
    index as a list of exceptions raised on successive attempts.
    """

    def __init__(self) -> None:
        self.base_url = "http://uploads.test/api"
        self.timeout = 5
        self.sessions: dict[str, dict] = {}
        self.chunk_calls: list[tuple[str, int]] = []
        self.chunk_failures: dict[int, list[Exception]] = {}
        self.dropped_once: set[int] = set()
        self.chunk_hook: Optional[Callable[[str, int], None]] = None
        self.initiate_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.finalize_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.initiated: list[dict] = []
        self.finalized: list[tuple[str, Optional[str]]] = []
        self.cancelled: list[str] = []
        self.status_calls = 0
        self.stats = MonitoringStats()
        self.health_report = HealthStatus(status="healthy", services={"database": "ok"})
        self._lock = threading.Lock()
        self._counter = 0

    def add_session(self, total: int, received: set[int], filename: str = "file.mp4") -> str:
        with self._lock:
            self._counter += 1
            session_id = f"sess-{self._counter}"
            self.sessions[session_id] = {
                "total": total,
                "received": set(received),
                "filename": filename,
                "size": 0,
                "mime_type": "video/mp4",
            }
        return session_id

    def initiate(self, filename, size, mime_type, total_chunks, content_hash=None) -> str:
        if self.initiate_error is not None:
            raise self.initiate_error
        self.initiated.append(
            {
                "filename": filename,
                "size": size,
                "mime_type": mime_type,
                "total_chunks": total_chunks,
                "content_hash": content_hash,
            }
        )
        session_id = self.add_session(total_chunks, set(), filename)
        self.sessions[session_id]["size"] = size
        return session_id

    def upload_chunk(self, session_id: str, index: int, data: bytes) -> ChunkReceipt:
        with self._lock:
            self.chunk_calls.append((session_id, index))
        if self.chunk_hook is not None:
            self.chunk_hook(session_id, index)
        failures = self.chunk_failures.get(index)
        if failures:
            raise failures.pop(0)

        session = self.sessions[session_id]
        with self._lock:
            if index in self.dropped_once:
                self.dropped_once.discard(index)
            else:
                session["received"].add(index)
            received = len(session["received"])
        return ChunkReceipt.model_validate(
            {
                "progress": received * 100.0 / session["total"],
                "uploaded_chunks": received,
                "total_chunks": session["total"],
            }
        )

    def get_status(self, session_id: str) -> SessionStatus:
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        if session_id not in self.sessions:
            raise ResourceNotFoundError("upload session", session_id)
        session = self.sessions[session_id]
        missing = [i for i in range(session["total"]) if i not in session["received"]]
        return SessionStatus.model_validate(
            {
                "upload_id": session_id,
                "filename": session["filename"],
                "file_size": session["size"],
                "mime_type": session["mime_type"],
                "total_chunks": session["total"],
                "uploaded_chunks": session["total"] - len(missing),
                "missing_chunks": missing,
                "progress": (session["total"] - len(missing)) * 100.0 / session["total"],
                "status": "uploading",
            }
        )

    def finalize(self, session_id: str, requester_id: Optional[str] = None) -> FinalizeResult:
        if self.finalize_error is not None:
            raise self.finalize_error
        self.finalized.append((session_id, requester_id))
        session = self.sessions[session_id]
        return FinalizeResult.model_validate(
            {
                "message": "Upload completed",
                "file_path": f"/uploads/{session['filename']}",
                "filename": session["filename"],
                "file_size": session["size"],
                "md5": "d41d8cd98f00b204e9800998ecf8427e",
                "is_duplicate": False,
            }
        )

    def cancel(self, session_id: str) -> None:
        self.cancelled.append(session_id)
        if self.cancel_error is not None:
            raise self.cancel_error

    def monitoring_stats(self) -> MonitoringStats:
        return self.stats

    def health(self) -> HealthStatus:
        return self.health_report

    def close(self) -> None:
        pass


class RecordingSignal(AbortSignal):
    """Abort signal that records backoff waits instead of sleeping."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        return self.aborted


# =============================================================================
# Helpers
# =============================================================================


def make_task(
    path: Path,
    *,
    chunk_size: int = 4,
    task_id: Optional[str] = None,
    mime_type: str = "video/mp4",
) -> UploadTask:
    """Build a task for a real file with a tiny chunk size."""
    return UploadTask(
        id=task_id or path.stem,
        source=path,
        filename=path.name,
        size=path.stat().st_size,
        mime_type=mime_type,
        chunk_size=chunk_size,
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll until ``predicate`` holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_server() -> FakeUploadServer:
    """In-memory upload server."""
    return FakeUploadServer()


@pytest.fixture
def sample_file(temp_dir: Path) -> Path:
    """A 40-byte file: ten 4-byte chunks."""
    path = temp_dir / "clip.mp4"
    path.write_bytes(bytes(range(40)))
    return path


@pytest.fixture
def cli_env(temp_dir: Path, fake_server: FakeUploadServer, monkeypatch) -> Path:
    """Point the CLI at the fake server and at state files under temp_dir."""
    state_dir = temp_dir / "state"
    for name in ("CHUNKUP_PROFILE", "CHUNKUP_VERIFY_SSL", "CHUNKUP_TIMEOUT", "CHUNKUP_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHUNKUP_URL", fake_server.base_url)
    monkeypatch.setattr("chunkup.core.config.CONFIG_FILE", state_dir / "config.yaml")
    monkeypatch.setattr("chunkup.cli.common.TASKS_FILE", state_dir / "tasks.json")
    monkeypatch.setattr("chunkup.cli.common.HISTORY_FILE", state_dir / "history.json")
    monkeypatch.setattr("chunkup.cli.common.UploadClient", lambda **kwargs: fake_server)
    return state_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample config YAML content."""
    return """
default_profile: test
output_format: table

profiles:
  test:
    url: http://localhost:8000/api
    verify_ssl: false
    timeout: 30
    concurrency: 2
    requester_id: alice

  production:
    url: https://uploads.example.org/api
    verify_ssl: true
    timeout: 60
"""
