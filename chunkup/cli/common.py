"""Shared state, options and error handling for chunkup commands."""

from __future__ import annotations

import sys
from enum import IntEnum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import click

from chunkup.core.client import UploadClient
from chunkup.core.config import HISTORY_FILE, TASKS_FILE, Config, Profile
from chunkup.core.exceptions import (
    ChunkupError,
    ConfigurationError,
    ConnectionError,
    ProfileNotFoundError,
)
from chunkup.core.logging import setup_logging
from chunkup.core.output import OutputFormat, print_error
from chunkup.services.history import HistoryStore
from chunkup.services.tasks import TaskStore

F = TypeVar("F", bound=Callable[..., Any])


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    UPLOAD_FAILED = 2
    NETWORK_ERROR = 3
    USER_INTERRUPTED = 130


# =============================================================================
# Context Object
# =============================================================================


class Context:
    """Per-invocation state shared by every command.

    The config is loaded lazily; the client and stores are built on first use
    so commands that never talk to the server work without a profile.
    """

    def __init__(self) -> None:
        self.config: Optional[Config] = None
        self.client: Optional[UploadClient] = None
        self.profile_name: Optional[str] = None
        self.output_format: OutputFormat = OutputFormat.TABLE
        self.quiet: bool = False
        self.verbose: bool = False

    def get_profile(self) -> Profile:
        if self.config is None:
            self.config = Config.load()

        try:
            return self.config.get_profile(self.profile_name)
        except ProfileNotFoundError as e:
            name = self.profile_name or self.config.default_profile
            raise ConfigurationError(
                f"Profile '{name}' not found. Run 'chunkup config init' to create one."
            ) from e

    def get_client(self) -> UploadClient:
        """Client for the selected profile, created once per invocation.

        Raises:
            ConfigurationError: If the profile does not exist.
        """
        if self.client is None:
            profile = self.get_profile()
            self.client = UploadClient(
                base_url=profile.url,
                timeout=profile.timeout,
                verify_ssl=profile.verify_ssl,
            )
        return self.client

    def get_task_store(self) -> TaskStore:
        """Task store with saved tasks loaded."""
        store = TaskStore(TASKS_FILE)
        store.load()
        return store

    def get_history_store(self) -> HistoryStore:
        return HistoryStore(HISTORY_FILE)


pass_context = click.make_pass_decorator(Context, ensure=True)


# =============================================================================
# Global Options
# =============================================================================

_GLOBAL_OPTIONS = (
    click.option("--profile", "-p", envvar="CHUNKUP_PROFILE", help="Config profile to use"),
    click.option(
        "--output",
        "-o",
        "output_format",
        type=click.Choice([fmt.value for fmt in OutputFormat]),
        default=OutputFormat.TABLE.value,
        help="Output format",
    ),
    click.option("--quiet", "-q", is_flag=True, help="Print task IDs only"),
    click.option("--verbose", "-v", is_flag=True, help="Log retries and requests"),
)


def global_options(f: F) -> F:
    """Attach ``--profile``, ``--output``, ``--quiet`` and ``--verbose``.

    The wrapped command receives the populated ``Context`` as its first
    argument.
    """

    @pass_context
    @wraps(f)
    def wrapper(
        ctx: Context,
        *args: Any,
        profile: Optional[str],
        output_format: str,
        quiet: bool,
        verbose: bool,
        **kwargs: Any,
    ) -> Any:
        ctx.profile_name = profile
        ctx.output_format = OutputFormat.from_string(output_format)
        ctx.quiet = quiet
        ctx.verbose = verbose
        setup_logging(quiet=quiet, verbose=verbose)
        ctx.config = Config.load()
        return f(ctx, *args, **kwargs)

    for option in reversed(_GLOBAL_OPTIONS):
        wrapper = option(wrapper)
    return wrapper  # type: ignore[return-value]


# =============================================================================
# Error Handling
# =============================================================================


def exit_code_for(error: ChunkupError) -> ExitCode:
    if isinstance(error, ConnectionError):
        return ExitCode.NETWORK_ERROR
    return ExitCode.GENERAL_ERROR


def handle_errors(f: F) -> F:
    """Print chunkup errors as one line and exit instead of a traceback."""

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except (click.ClickException, click.Abort):
            raise
        except ChunkupError as e:
            print_error(str(e))
            sys.exit(exit_code_for(e))
        except Exception as e:
            print_error(f"Unexpected error: {e}")
            sys.exit(ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
