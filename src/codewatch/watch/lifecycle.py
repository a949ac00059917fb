"""Watcher lifecycle: one change source bound to one aggregator for one root.

State machine:
    IDLE --start()--> STARTING --(source ready)--> ACTIVE
    ACTIVE --pause()--> PAUSED --resume()--> ACTIVE
    {STARTING, ACTIVE, PAUSED, ERRORED} --stop()--> STOPPING --> STOPPED
    any --(source error)--> ERRORED

Source errors are reported upward through the ERROR signal and never retried
here. While PAUSED the source keeps running but its notifications are dropped
before they reach the aggregator.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

import structlog

from codewatch.config.models import WatcherConfig
from codewatch.core.errors import RawSourceError, WatcherError
from codewatch.watch.aggregator import ChangeAggregator
from codewatch.watch.events import (
    AggregatedChanges,
    ChangeKind,
    FileChangeEvent,
    WatcherState,
    WatcherStatus,
)
from codewatch.watch.signals import LifecycleSignal, SignalEmitter
from codewatch.watch.source import (
    RawChangeSource,
    SourceFactory,
    SourceHandlers,
    watchfiles_source_factory,
)

logger = structlog.get_logger()


@dataclass
class WatcherLifecycle:
    """
    Owns start/stop/pause/resume for one watched root.

    Signals (via `signals`):
    - CHANGES(AggregatedChanges): a debounced batch, including the final
      batch flushed during stop()
    - ERROR(RawSourceError): the source failed; state is ERRORED
    - READY, STOPPED, PAUSED, RESUMED
    - BURST_MODE_START, BURST_MODE_END
    """

    root: Path
    config: WatcherConfig
    source_factory: SourceFactory = watchfiles_source_factory
    clock: Callable[[], float] = time.monotonic

    signals: SignalEmitter[LifecycleSignal] = field(default_factory=SignalEmitter, init=False)
    _state: WatcherState = field(default=WatcherState.IDLE, init=False)
    _aggregator: ChangeAggregator = field(init=False)
    _source: RawChangeSource | None = field(default=None, init=False)
    _last_change_time: datetime | None = field(default=None, init=False)
    _last_error: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._aggregator = ChangeAggregator(
            root=self.root,
            config=self.config,
            on_changes=self._emit_changes,
            on_burst_mode=self._emit_burst_mode,
            clock=self.clock,
        )

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def aggregator(self) -> ChangeAggregator:
        return self._aggregator

    async def start(self) -> None:
        """Create and start the change source. No-op if already running."""
        if self._state in (WatcherState.STARTING, WatcherState.ACTIVE, WatcherState.PAUSED):
            logger.debug("watcher_already_started", root=str(self.root))
            return
        if self._state is not WatcherState.IDLE:
            raise WatcherError.invalid_state(str(self.root), self._state.value, "start")

        self._state = WatcherState.STARTING
        logger.info(
            "watcher_starting",
            root=str(self.root),
            debounce_ms=self.config.debounce_ms,
            burst_debounce_ms=self.config.burst_debounce_ms,
        )

        self._source = self.source_factory(
            self.root,
            self.config,
            SourceHandlers(
                on_change=self._on_source_change,
                on_ready=self._on_source_ready,
                on_error=self._on_source_error,
                on_close=self._on_source_close,
            ),
        )
        try:
            await self._source.start()
        except Exception as e:
            self._state = WatcherState.ERRORED
            self._last_error = str(e)
            self._source = None
            raise RawSourceError.from_exception(str(self.root), e) from e

    async def stop(self) -> None:
        """Flush observed changes, release the source and reset state."""
        if self._state in (WatcherState.IDLE, WatcherState.STOPPING, WatcherState.STOPPED):
            return

        logger.info("watcher_stopping", root=str(self.root), state=self._state.value)
        self._state = WatcherState.STOPPING

        self._aggregator.cancel()
        self._aggregator.force_flush()

        source, self._source = self._source, None
        try:
            if source is not None:
                await source.close()
        finally:
            self._aggregator.reset()
            self._state = WatcherState.STOPPED
            logger.info("watcher_stopped", root=str(self.root))
            self.signals.emit(LifecycleSignal.STOPPED)

    def pause(self) -> None:
        """Keep the source alive but drop its notifications."""
        if self._state is not WatcherState.ACTIVE:
            logger.debug("watcher_pause_ignored", root=str(self.root), state=self._state.value)
            return
        self._state = WatcherState.PAUSED
        logger.info("watcher_paused", root=str(self.root))
        self.signals.emit(LifecycleSignal.PAUSED)

    def resume(self) -> None:
        """Resume delivering notifications after pause()."""
        if self._state is not WatcherState.PAUSED:
            logger.debug("watcher_resume_ignored", root=str(self.root), state=self._state.value)
            return
        self._state = WatcherState.ACTIVE
        logger.info("watcher_resumed", root=str(self.root))
        self.signals.emit(LifecycleSignal.RESUMED)

    def get_status(self) -> WatcherStatus:
        return WatcherStatus(
            root_path=self.root,
            state=self._state,
            pending_changes=self._aggregator.pending_count,
            is_burst_mode=self._aggregator.is_burst_mode,
            last_change_time=self._last_change_time,
            last_error=self._last_error,
        )

    def _on_source_ready(self) -> None:
        if self._state is not WatcherState.STARTING:
            return
        self._state = WatcherState.ACTIVE
        logger.info("watcher_ready", root=str(self.root))
        self.signals.emit(LifecycleSignal.READY)

    def _on_source_change(self, kind: ChangeKind, relative_path: str) -> None:
        if self._state is not WatcherState.ACTIVE:
            logger.debug(
                "change_dropped",
                root=str(self.root),
                path=relative_path,
                state=self._state.value,
            )
            return

        # Sources filter extensions too; this keeps custom sources honest
        if PurePosixPath(relative_path).suffix.lower() not in self.config.supported_extensions:
            return

        self._last_change_time = datetime.now(UTC)
        self._last_error = None

        logger.debug("change_accepted", root=str(self.root), path=relative_path, kind=kind.value)
        self._aggregator.accept(
            FileChangeEvent(
                kind=kind,
                relative_path=relative_path,
                absolute_path=self.root / relative_path,
            )
        )

    def _on_source_error(self, exc: BaseException) -> None:
        if self._state in (WatcherState.STOPPING, WatcherState.STOPPED):
            return
        self._state = WatcherState.ERRORED
        self._last_error = str(exc)
        error = RawSourceError.from_exception(str(self.root), exc)
        logger.error("watcher_error", root=str(self.root), error=str(exc))
        self.signals.emit(LifecycleSignal.ERROR, error)

    def _on_source_close(self) -> None:
        logger.debug("watcher_source_closed", root=str(self.root))

    def _emit_changes(self, changes: AggregatedChanges) -> None:
        self.signals.emit(LifecycleSignal.CHANGES, changes)

    def _emit_burst_mode(self, active: bool) -> None:
        signal = LifecycleSignal.BURST_MODE_START if active else LifecycleSignal.BURST_MODE_END
        self.signals.emit(signal)
