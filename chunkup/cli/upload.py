"""Upload commands for chunkup."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import click

from chunkup.cli.common import Context, ExitCode, global_options, handle_errors
from chunkup.core.exceptions import MediaValidationError
from chunkup.core.output import (
    OutputFormat,
    create_progress,
    format_duration,
    format_file_size,
    print_error,
    print_info,
    print_output,
    print_success,
    print_warning,
)
from chunkup.core.validation import validate_concurrency
from chunkup.models.progress import UploadSummary
from chunkup.models.task import TaskStatus, UploadTask
from chunkup.services.queue import UploadQueueManager
from chunkup.services.tasks import TaskStore
from chunkup.uploaders.common import (
    collect_media_files,
    compute_content_hash,
    validate_media_file,
)
from chunkup.uploaders.engine import ChunkTransferEngine
from chunkup.uploaders.signals import TransferRegistry

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2

TASK_COLUMNS = ["id", "filename", "size", "status", "progress", "session_id", "error"]
TASK_LABELS = {
    "id": "ID",
    "filename": "File",
    "size": "Size",
    "status": "Status",
    "progress": "Progress",
    "session_id": "Session",
    "error": "Error",
}


# =============================================================================
# Helpers
# =============================================================================


def _task_row(task: UploadTask) -> dict[str, object]:
    return {
        "id": task.id,
        "filename": task.filename,
        "size": format_file_size(task.size),
        "status": task.status.value,
        "progress": f"{task.progress:.0f}%",
        "session_id": task.session_id or "",
        "error": task.error or "",
    }


def _find_task(store: TaskStore, task_id: str) -> UploadTask:
    task = store.get(task_id)
    if task is None:
        raise click.ClickException(f"No saved task matches '{task_id}'. See 'chunkup tasks'.")
    return task


def _status_label(task: UploadTask) -> str:
    if task.status == TaskStatus.ERROR:
        return f"[red]error[/red] {task.error or ''}"
    if task.status == TaskStatus.COMPLETED:
        return "[green]completed[/green]"
    if task.status == TaskStatus.PAUSED:
        return "[yellow]paused[/yellow]"
    return task.status.value


def _wait_for_uploads(ctx: Context, manager: UploadQueueManager, tasks: list[UploadTask]) -> None:
    """Block until the manager is idle, drawing one progress bar per file."""
    if ctx.quiet or ctx.output_format == OutputFormat.JSON:
        while not manager.wait_idle(POLL_INTERVAL):
            pass
        return

    with create_progress() as progress:
        bars = {
            task.id: progress.add_task(task.filename, total=task.size, status=task.status.value)
            for task in tasks
        }
        while True:
            idle = manager.wait_idle(POLL_INTERVAL)
            for task in tasks:
                progress.update(
                    bars[task.id],
                    completed=task.size * task.progress / 100,
                    status=_status_label(task),
                )
            if idle:
                break


def _run_uploads(
    ctx: Context,
    store: TaskStore,
    tasks: list[UploadTask],
    *,
    concurrency: Optional[int],
    requester: Optional[str],
    start: Callable[[UploadQueueManager], object],
) -> UploadSummary:
    """Run a batch through a queue manager until it finishes or is interrupted.

    Ctrl-C pauses every task and waits for the pauses to land, so the saved
    tasks can be resumed later.
    """
    profile = ctx.get_profile()
    client = ctx.get_client()
    history = ctx.get_history_store()

    engine = ChunkTransferEngine(client, requester_id=requester or profile.requester_id)
    manager = UploadQueueManager(
        engine,
        concurrency=validate_concurrency(concurrency, profile.concurrency),
        on_update=store.apply,
        on_history=history.add,
    )

    started = time.time()
    interrupted = False
    try:
        start(manager)
        try:
            _wait_for_uploads(ctx, manager, tasks)
        except KeyboardInterrupt:
            interrupted = True
            print_warning("Interrupted, pausing uploads...")
            manager.pause_all()
            if not manager.wait_idle(timeout=profile.timeout + 5):
                print_warning("Some transfers did not stop in time")
    finally:
        manager.shutdown(wait=not interrupted)
        store.save()
        client.close()

    summary = UploadSummary.from_tasks(tasks, duration=time.time() - started)
    _report(ctx, tasks, summary)

    if interrupted:
        print_info("Run 'chunkup resume' to continue")
        sys.exit(ExitCode.USER_INTERRUPTED)
    return summary


def _report(ctx: Context, tasks: list[UploadTask], summary: UploadSummary) -> None:
    if ctx.quiet:
        print_output([{"id": t.id} for t in tasks if t.status != TaskStatus.COMPLETED], quiet=True)
        return

    if ctx.output_format == OutputFormat.JSON:
        print_output(
            {
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "paused": summary.paused,
                "duration": round(summary.duration, 2),
                "throughput_mbps": round(summary.throughput_mbps, 2),
                "tasks": [t.to_dict() for t in tasks],
            },
            format=OutputFormat.JSON,
        )
        return

    for error in summary.errors:
        print_error(error)

    message = (
        f"{summary.succeeded}/{len(tasks)} uploaded "
        f"({format_file_size(summary.uploaded_bytes)} in {format_duration(summary.duration)})"
    )
    if summary.success:
        print_success(message)
    else:
        print_warning(message)
    if summary.paused:
        print_info(f"{summary.paused} paused")


def _exit_for(summary: UploadSummary) -> None:
    if summary.failed:
        sys.exit(ExitCode.UPLOAD_FAILED)


# =============================================================================
# Commands
# =============================================================================


@click.command("upload")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--concurrency",
    "-c",
    type=int,
    default=None,
    help="Files uploaded at the same time (default: profile setting)",
)
@click.option("--hash", "with_hash", is_flag=True, help="Send a SHA-256 digest of each file")
@click.option("--requester", default=None, help="Requester ID sent when finalizing")
@click.option("--recursive/--no-recursive", default=True, help="Descend into directories")
@global_options
@handle_errors
def upload(
    ctx: Context,
    paths: tuple[Path, ...],
    concurrency: Optional[int],
    with_hash: bool,
    requester: Optional[str],
    recursive: bool,
) -> None:
    """Upload image and video files in resumable chunks.

    Directories are expanded; files that are not accepted media are skipped
    with a warning. Press Ctrl-C to pause everything and resume later.

    Example:
        chunkup upload movie.mp4
        chunkup upload ./photos --concurrency 5
        chunkup upload a.png b.png --hash -o json
    """
    ctx.get_profile()
    files = collect_media_files(list(paths), recursive=recursive)
    store = ctx.get_task_store()

    tasks: list[UploadTask] = []
    for path in files:
        try:
            mime_type = validate_media_file(path)
        except MediaValidationError as e:
            print_warning(str(e))
            continue
        task = UploadTask.from_path(
            path,
            mime_type=mime_type,
            content_hash=compute_content_hash(path) if with_hash else None,
        )
        store.upsert(task)
        tasks.append(task)

    if not tasks:
        raise click.ClickException("No valid media files to upload")

    store.save()
    summary = _run_uploads(
        ctx,
        store,
        tasks,
        concurrency=concurrency,
        requester=requester,
        start=lambda manager: manager.enqueue(tasks),
    )
    _exit_for(summary)


@click.command("resume")
@click.argument("task_ids", nargs=-1)
@click.option("--concurrency", "-c", type=int, default=None, help="Files uploaded at the same time")
@click.option("--requester", default=None, help="Requester ID sent when finalizing")
@global_options
@handle_errors
def resume(
    ctx: Context,
    task_ids: tuple[str, ...],
    concurrency: Optional[int],
    requester: Optional[str],
) -> None:
    """Resume saved uploads, continuing their server sessions.

    Without TASK_IDS every paused or pending task is resumed.

    Example:
        chunkup resume
        chunkup resume 3f2a9c
    """
    store = ctx.get_task_store()
    if task_ids:
        tasks = [_find_task(store, task_id) for task_id in task_ids]
    else:
        tasks = [t for t in store.tasks() if t.status in (TaskStatus.PAUSED, TaskStatus.PENDING)]

    if not tasks:
        print_info("Nothing to resume")
        return

    for task in tasks:
        if task.status == TaskStatus.ERROR:
            raise click.ClickException(
                f"Task {task.id} failed; start it again with 'chunkup retry {task.id}'"
            )
        if task.status == TaskStatus.COMPLETED:
            raise click.ClickException(f"Task {task.id} is already completed")
        if not task.source.is_file():
            raise click.ClickException(f"Source file is gone: {task.source}")

    def start(manager: UploadQueueManager) -> None:
        # Each resume goes to the front of the queue
        for task in reversed(tasks):
            manager.resume(task)

    summary = _run_uploads(
        ctx,
        store,
        tasks,
        concurrency=concurrency,
        requester=requester,
        start=start,
    )
    _exit_for(summary)


@click.command("retry")
@click.argument("task_id")
@click.option("--requester", default=None, help="Requester ID sent when finalizing")
@global_options
@handle_errors
def retry(ctx: Context, task_id: str, requester: Optional[str]) -> None:
    """Restart a saved upload from scratch with a new session.

    Example:
        chunkup retry 3f2a9c
    """
    store = ctx.get_task_store()
    task = _find_task(store, task_id)

    if task.status != TaskStatus.ERROR:
        print_warning(f"Task {task.id} is {task.status.value}; restarting it anyway")
    if not task.source.is_file():
        raise click.ClickException(f"Source file is gone: {task.source}")

    summary = _run_uploads(
        ctx,
        store,
        [task],
        concurrency=1,
        requester=requester,
        start=lambda manager: manager.retry(task),
    )
    _exit_for(summary)


@click.command("cancel")
@click.argument("task_id")
@global_options
@handle_errors
def cancel(ctx: Context, task_id: str) -> None:
    """Drop a saved upload and discard its server session.

    Example:
        chunkup cancel 3f2a9c
    """
    store = ctx.get_task_store()
    task = _find_task(store, task_id)

    if task.session_id:
        client = ctx.get_client()
        engine = ChunkTransferEngine(client)
        thread = engine.cancel(task.id, task.session_id, TransferRegistry())
        if thread is not None:
            thread.join(timeout=client.timeout + 5)
        client.close()

    store.remove(task.id)
    store.save()

    if ctx.quiet:
        click.echo(task.id)
    else:
        print_success(f"Cancelled {task.filename} ({task.id})")


@click.command("tasks")
@global_options
@handle_errors
def tasks(ctx: Context) -> None:
    """List saved, unfinished uploads.

    Example:
        chunkup tasks
        chunkup tasks -q  # IDs only
    """
    store = ctx.get_task_store()
    saved = store.tasks()

    if ctx.output_format == OutputFormat.JSON and not ctx.quiet:
        print_output([t.to_dict() for t in saved], format=OutputFormat.JSON)
        return

    print_output(
        [_task_row(t) for t in saved],
        format=ctx.output_format,
        columns=TASK_COLUMNS,
        column_labels=TASK_LABELS,
        quiet=ctx.quiet,
        id_field="id",
    )


@click.command("status")
@click.argument("session_id")
@global_options
@handle_errors
def status(ctx: Context, session_id: str) -> None:
    """Show the server's view of an upload session.

    Example:
        chunkup status 8d0c7c4e-1a2b
    """
    client = ctx.get_client()
    try:
        session = client.get_status(session_id)
    finally:
        client.close()

    data = session.to_dict()
    if ctx.output_format == OutputFormat.TABLE and not ctx.quiet:
        data["missing_chunks"] = len(session.missing_chunks)

    print_output(
        data,
        format=ctx.output_format,
        quiet=ctx.quiet,
        id_field="session_id",
        title=f"Session {session.session_id or session_id}",
    )
