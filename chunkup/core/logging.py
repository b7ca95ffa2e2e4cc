"""Logging for chunkup.

Library modules log through ``logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once per command. Terminal upload outcomes additionally go
to the ``chunkup.audit`` logger as one structured record each.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
AUDIT_LOGGER_NAME = "chunkup.audit"

# Per-request logging from the HTTP stack; one line per chunk at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    level: int = logging.WARNING,
    *,
    quiet: bool = False,
    verbose: bool = False,
) -> None:
    """Send log records to stderr.

    Args:
        level: Level used when neither flag is given.
        quiet: Only errors.
        verbose: Everything down to DEBUG, including retry chatter.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT, stream=sys.stderr)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# =============================================================================
# Operation Context
# =============================================================================


class LogContext:
    """Logs the start, end and duration of one operation.

    Exceptions listed in ``expected`` end the operation at INFO ("stopped")
    instead of ERROR; they still propagate.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[logging.Logger] = None,
        *,
        expected: tuple[type[BaseException], ...] = (),
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or logging.getLogger(__name__)
        self.expected = expected
        self.context = context
        self._started: Optional[float] = None

    @property
    def fields(self) -> str:
        return ", ".join(f"{key}={value}" for key, value in self.context.items())

    @property
    def elapsed(self) -> float:
        """Seconds since the operation started."""
        return 0.0 if self._started is None else time.monotonic() - self._started

    def __enter__(self) -> "LogContext":
        self._started = time.monotonic()
        self.logger.info("Starting %s (%s)", self.operation, self.fields)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self.logger.info("%s completed in %.2fs", self.operation, self.elapsed)
        elif issubclass(exc_type, self.expected):
            self.logger.info("%s stopped after %.2fs: %s", self.operation, self.elapsed, exc_val)
        else:
            self.logger.error(
                "%s failed after %.2fs (%s): %s", self.operation, self.elapsed, self.fields, exc_val
            )


@contextmanager
def log_context(
    operation: str,
    logger: Optional[logging.Logger] = None,
    *,
    expected: tuple[type[BaseException], ...] = (),
    **context: Any,
) -> Iterator[LogContext]:
    """Function form of ``LogContext``.

    Example:
        >>> with log_context("transfer", logger, task=task.id):
        ...     upload()
    """
    with LogContext(operation, logger, expected=expected, **context) as ctx:
        yield ctx


# =============================================================================
# Audit Trail
# =============================================================================


class AuditLogger:
    """One record per upload that completed or failed for good."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def log_upload(
        self,
        task_id: str,
        *,
        filename: str,
        size: int,
        session_id: Optional[str] = None,
        success: bool = True,
        duration: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Write the audit record of a terminal upload outcome.

        Failures are logged at WARNING so they show with the default level.
        """
        record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "operation": "upload",
            "task": task_id,
            "filename": filename,
            "size": size,
            "success": success,
        }
        if session_id:
            record["session"] = session_id
        if duration is not None:
            record["duration"] = round(duration, 3)
        if details:
            record["details"] = details

        self.logger.log(logging.INFO if success else logging.WARNING, "AUDIT: %s", record)


def get_audit_logger() -> AuditLogger:
    return AuditLogger()
