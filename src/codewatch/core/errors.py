"""Error taxonomy for codewatch.

Codes are grouped by the thousand: 2xxx for configuration and watch roots,
3xxx for watchers and the manager.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Self

from pydantic import ValidationError


class ErrorCode(IntEnum):
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_ROOT_NOT_FOUND = 2003
    CONFIG_ROOT_NOT_DIRECTORY = 2004

    WATCHER_CAPACITY_EXCEEDED = 3001
    WATCHER_SOURCE_ERROR = 3002
    WATCHER_CALLBACK_ERROR = 3003
    WATCHER_RECOVERY_FAILED = 3004
    WATCHER_INVALID_STATE = 3005


@dataclass(frozen=True, slots=True)
class CodeWatchError(Exception):
    """Base class. ``details`` holds the machine-readable context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form, used by ``codewatch watch --json``."""
        return {
            "code": int(self.code),
            "error": self.code.name,
            "message": self.message,
            "retryable": self.retryable,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        return f"[{int(self.code)}] {self.code.name}: {self.message}"


class ConfigError(CodeWatchError):
    """Bad configuration, or a watch root that cannot be used."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            ErrorCode.CONFIG_PARSE_ERROR,
            f"Cannot read config file {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            ErrorCode.CONFIG_INVALID_VALUE,
            f"Config field '{field}' rejected: {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def from_validation(cls, exc: ValidationError) -> "ConfigError":
        """Report the first pydantic error, addressed by its dotted field path."""
        first = exc.errors()[0]
        dotted = ".".join(str(part) for part in first["loc"])
        return cls.invalid_value(dotted, first.get("input"), first["msg"])

    @classmethod
    def root_not_found(cls, path: str) -> "ConfigError":
        return cls(
            ErrorCode.CONFIG_ROOT_NOT_FOUND,
            f"Path '{path}' does not exist",
            details={"path": path},
        )

    @classmethod
    def root_not_directory(cls, path: str) -> "ConfigError":
        return cls(
            ErrorCode.CONFIG_ROOT_NOT_DIRECTORY,
            f"Path '{path}' is not a directory",
            details={"path": path},
        )


class WatcherError(CodeWatchError):
    """Raised by watcher lifecycles and the manager."""

    # Set by subclasses that wrap an underlying exception
    wrap_code = ErrorCode.WATCHER_SOURCE_ERROR
    wrap_retryable = False
    wrap_template = "{root}: {exc}"

    @classmethod
    def invalid_state(cls, root: str, state: str, operation: str) -> "WatcherError":
        return cls(
            ErrorCode.WATCHER_INVALID_STATE,
            f"Cannot {operation} watcher for {root} in state '{state}'",
            details={"path": root, "state": state, "operation": operation},
        )

    @classmethod
    def from_exception(cls, root: str, exc: BaseException) -> Self:
        return cls(
            cls.wrap_code,
            cls.wrap_template.format(root=root, exc=exc),
            retryable=cls.wrap_retryable,
            details={"path": root, "reason": str(exc), "type": type(exc).__name__},
        )


class CapacityExceededError(WatcherError):
    """The registry already holds ``max_watchers`` roots."""

    @classmethod
    def for_limit(cls, limit: int, path: str) -> "CapacityExceededError":
        return cls(
            ErrorCode.WATCHER_CAPACITY_EXCEEDED,
            f"Maximum number of watchers ({limit}) reached. Stop watching another root first.",
            details={"max_watchers": limit, "path": path},
        )


class RawSourceError(WatcherError):
    """The notification source behind a watcher failed."""

    wrap_code = ErrorCode.WATCHER_SOURCE_ERROR
    wrap_retryable = True
    wrap_template = "Change source for {root} failed: {exc}"


class CallbackError(WatcherError):
    wrap_code = ErrorCode.WATCHER_CALLBACK_ERROR
    wrap_template = "Change handler for {root} raised: {exc}"


class RecoveryError(WatcherError):
    wrap_code = ErrorCode.WATCHER_RECOVERY_FAILED
    wrap_template = "Recovery failed for {root}: {exc}"
