"""Explicit callback registration for watcher signals.

Components own a SignalEmitter instead of inheriting from an event bus, so
observers subscribe with plain callables and can unsubscribe with the handle
returned by on().
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger()

S = TypeVar("S", bound=Enum)

Handler = Callable[..., Any]


class LifecycleSignal(Enum):
    """Signals emitted by a single watcher lifecycle."""

    CHANGES = "changes"
    ERROR = "error"
    READY = "ready"
    STOPPED = "stopped"
    PAUSED = "paused"
    RESUMED = "resumed"
    BURST_MODE_START = "burst_mode_start"
    BURST_MODE_END = "burst_mode_end"


class ManagerSignal(Enum):
    """Path-tagged signals emitted by the watcher manager."""

    CHANGES = "changes"
    WATCHER_ERROR = "watcher_error"
    WATCHER_READY = "watcher_ready"
    WATCHER_STOPPED = "watcher_stopped"
    WATCHER_PAUSED = "watcher_paused"
    WATCHER_RESUMED = "watcher_resumed"
    BURST_MODE_START = "burst_mode_start"
    BURST_MODE_END = "burst_mode_end"
    RECOVERY_SUCCESS = "recovery_success"
    RECOVERY_FAILED = "recovery_failed"
    HANDLER_ERROR = "handler_error"


class SignalEmitter(Generic[S]):
    """Synchronous fan-out of signals to registered handlers.

    A handler that raises is logged and skipped; remaining handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[S, list[Handler]] = defaultdict(list)

    def on(self, signal: S, handler: Handler) -> Callable[[], None]:
        """Register handler for signal. Returns an unsubscribe callable."""
        self._handlers[signal].append(handler)

        def unsubscribe() -> None:
            self.off(signal, handler)

        return unsubscribe

    def off(self, signal: S, handler: Handler) -> None:
        handlers = self._handlers.get(signal)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, signal: S, *args: Any) -> None:
        # Copy so handlers may unsubscribe during emission
        for handler in list(self._handlers.get(signal, ())):
            try:
                handler(*args)
            except Exception as e:
                logger.error("signal_handler_failed", signal=signal.value, error=str(e))

    def handler_count(self, signal: S) -> int:
        return len(self._handlers.get(signal, ()))

    def clear(self) -> None:
        self._handlers.clear()
