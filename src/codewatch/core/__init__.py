"""Core module exports."""

from codewatch.core.errors import (
    CallbackError,
    CapacityExceededError,
    CodeWatchError,
    ConfigError,
    ErrorCode,
    RawSourceError,
    RecoveryError,
    WatcherError,
)
from codewatch.core.logging import (
    bind_session_id,
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
)

__all__ = [
    # Errors
    "CallbackError",
    "CapacityExceededError",
    "CodeWatchError",
    "ConfigError",
    "ErrorCode",
    "RawSourceError",
    "RecoveryError",
    "WatcherError",
    # Logging
    "bind_session_id",
    "clear_session_id",
    "configure_logging",
    "get_logger",
    "get_session_id",
]
