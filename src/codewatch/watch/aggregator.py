"""Per-root change aggregation: coalescing, burst detection, quiet-period debounce.

Design:
- Pending changes are keyed by relative path; a newer event for a path
  replaces the older one (latest kind wins)
- Every accepted event re-arms a single loop.call_later timer, so a batch is
  emitted only after a quiet gap of the active debounce length
- Burst mode (many events within a sliding window) switches to the longer
  burst debounce; start/end are edge-triggered
- The burst window survives flushes and is only pruned by time
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from codewatch.config.models import WatcherConfig
from codewatch.core.formatting import summarize_changes_by_type
from codewatch.watch.events import AggregatedChanges, FileChangeEvent

logger = structlog.get_logger()


@dataclass
class ChangeAggregator:
    """
    Debounced, coalescing change buffer for one watched root.

    Must be driven from a single event loop: accept() schedules the flush
    timer on the running loop, and all state is mutated only from loop
    callbacks.

    The burst window keeps at most burst_threshold timestamps. Burst mode only
    compares the window count against the threshold, so older entries beyond
    that many can never change the outcome.
    """

    root: Path
    config: WatcherConfig
    on_changes: Callable[[AggregatedChanges], None]
    on_burst_mode: Callable[[bool], None] | None = None
    clock: Callable[[], float] = time.monotonic

    _pending: dict[str, FileChangeEvent] = field(default_factory=dict, init=False)
    _burst_window: deque[float] = field(init=False)
    _is_burst_mode: bool = field(default=False, init=False)
    _timer: asyncio.TimerHandle | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._burst_window = deque(maxlen=self.config.burst_threshold)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_burst_mode(self) -> bool:
        return self._is_burst_mode

    @property
    def has_scheduled_flush(self) -> bool:
        return self._timer is not None

    @property
    def burst_window_size(self) -> int:
        return len(self._burst_window)

    def accept(self, event: FileChangeEvent) -> None:
        """Record a change and re-arm the debounce timer."""
        self._pending[event.relative_path] = event
        self._track_burst(self.clock())
        self._schedule_flush()

    def flush(self) -> AggregatedChanges | None:
        """Emit all pending changes as one batch. No-op when nothing is pending."""
        self.cancel()
        if not self._pending:
            return None

        changes = AggregatedChanges.from_events(self._pending.values())
        self._pending.clear()

        logger.info(
            "changes_flushed",
            root=str(self.root),
            added=len(changes.added),
            modified=len(changes.modified),
            removed=len(changes.removed),
            summary=summarize_changes_by_type(changes.all_paths()),
        )

        self.on_changes(changes)
        return changes

    def force_flush(self) -> AggregatedChanges | None:
        """Flush synchronously during teardown so observed changes are not lost."""
        return self.flush()

    def cancel(self) -> None:
        """Cancel the scheduled flush without flushing."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def reset(self) -> None:
        """Drop pending changes and burst state."""
        self.cancel()
        self._pending.clear()
        self._burst_window.clear()
        self._is_burst_mode = False

    def _track_burst(self, now: float) -> None:
        self._burst_window.append(now)

        window_start = now - self.config.burst_window_ms / 1000.0
        while self._burst_window and self._burst_window[0] < window_start:
            self._burst_window.popleft()

        was_burst = self._is_burst_mode
        self._is_burst_mode = len(self._burst_window) >= self.config.burst_threshold

        if self._is_burst_mode == was_burst:
            return

        if self._is_burst_mode:
            logger.info(
                "burst_mode_started",
                root=str(self.root),
                changes=len(self._burst_window),
                window_ms=self.config.burst_window_ms,
            )
        else:
            logger.info("burst_mode_ended", root=str(self.root))

        if self.on_burst_mode is not None:
            self.on_burst_mode(self._is_burst_mode)

    def _schedule_flush(self) -> None:
        loop = asyncio.get_running_loop()

        # Cancel existing timer
        if self._timer is not None:
            self._timer.cancel()

        delay = self.config.debounce_for(self._is_burst_mode)
        self._timer = loop.call_later(delay, self.flush)
