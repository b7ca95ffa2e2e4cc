"""Core modules for chunkup."""

from chunkup.core.client import UploadClient
from chunkup.core.config import CONFIG_DIR, CONFIG_FILE, Config, Profile
from chunkup.core.exceptions import (
    ApiError,
    ChunkupError,
    ConfigurationError,
    ConnectionError,
    FinalizationFailure,
    NetworkError,
    ReconciliationFailure,
    ResourceNotFoundError,
    SessionInitiationFailure,
    TerminalChunkFailure,
    TransferAborted,
    TransientChunkFailure,
    UploadError,
    UserCancelled,
    UserPaused,
    ValidationError,
)
from chunkup.core.logging import LogContext, get_audit_logger, get_logger, setup_logging
from chunkup.core.output import (
    OutputFormat,
    console,
    print_error,
    print_json,
    print_output,
    print_success,
    print_table,
    print_warning,
)
from chunkup.core.validation import (
    validate_concurrency,
    validate_path_exists,
    validate_server_url,
    validate_timeout,
)

__all__ = [
    # Exceptions
    "ChunkupError",
    "ApiError",
    "ConfigurationError",
    "ConnectionError",
    "NetworkError",
    "ResourceNotFoundError",
    "ValidationError",
    "UploadError",
    "TransientChunkFailure",
    "TerminalChunkFailure",
    "SessionInitiationFailure",
    "ReconciliationFailure",
    "FinalizationFailure",
    "TransferAborted",
    "UserPaused",
    "UserCancelled",
    # Validation
    "validate_server_url",
    "validate_timeout",
    "validate_concurrency",
    "validate_path_exists",
    # Config
    "Config",
    "Profile",
    "CONFIG_DIR",
    "CONFIG_FILE",
    # Client
    "UploadClient",
    # Output
    "OutputFormat",
    "print_output",
    "print_table",
    "print_json",
    "print_error",
    "print_warning",
    "print_success",
    "console",
    # Logging
    "get_logger",
    "get_audit_logger",
    "setup_logging",
    "LogContext",
]
