"""Registry of watcher lifecycles keyed by root path.

Responsibilities:
- Capacity cap on concurrently watched roots
- Three-tier config merge: hard defaults < manager default < per-call
- Path-tagged re-emission of every lifecycle signal
- Isolation of caller callback failures (logged, emitted as HANDLER_ERROR)
- Single-shot recovery after a source error: tear down, deregister, wait a
  fixed cooldown, start again with the original callback and config

Recovery is deliberately single-shot with no backoff. A source that keeps
failing is restarted once per failure, each after the same cooldown.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from os import PathLike
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from codewatch.config.loader import coerce_watcher_config, merge_watcher_configs
from codewatch.config.models import (
    DEFAULT_MAX_WATCHERS,
    DEFAULT_RECOVERY_COOLDOWN_SEC,
    WatcherConfig,
)
from codewatch.core.errors import (
    CallbackError,
    CapacityExceededError,
    CodeWatchError,
    ConfigError,
    RecoveryError,
)
from codewatch.watch.events import AggregatedChanges, WatcherStatus
from codewatch.watch.lifecycle import WatcherLifecycle
from codewatch.watch.signals import LifecycleSignal, ManagerSignal, SignalEmitter
from codewatch.watch.source import SourceFactory, watchfiles_source_factory

if TYPE_CHECKING:
    from codewatch.config.models import CodeWatchConfig

logger = structlog.get_logger()

ChangeHandler = Callable[[AggregatedChanges], Awaitable[None] | None]
StrPath = str | PathLike[str]

# Lifecycle signals that are re-emitted unchanged apart from the path tag
_FORWARDED: dict[LifecycleSignal, ManagerSignal] = {
    LifecycleSignal.READY: ManagerSignal.WATCHER_READY,
    LifecycleSignal.STOPPED: ManagerSignal.WATCHER_STOPPED,
    LifecycleSignal.PAUSED: ManagerSignal.WATCHER_PAUSED,
    LifecycleSignal.RESUMED: ManagerSignal.WATCHER_RESUMED,
    LifecycleSignal.BURST_MODE_START: ManagerSignal.BURST_MODE_START,
    LifecycleSignal.BURST_MODE_END: ManagerSignal.BURST_MODE_END,
}


@dataclass(frozen=True)
class ManagerEvent:
    """A manager signal tagged with the root it concerns."""

    signal: ManagerSignal
    root_path: Path
    changes: AggregatedChanges | None = None
    error: CodeWatchError | None = None


@dataclass
class ManagedWatcherEntry:
    """Registry record for one watched root."""

    root_path: Path
    lifecycle: WatcherLifecycle
    config: WatcherConfig
    started_at: datetime
    on_changes: ChangeHandler | None = None

    dispatches: set[asyncio.Task[None]] = field(default_factory=set)
    unsubscribers: list[Callable[[], None]] = field(default_factory=list)


def resolve_root(path: StrPath) -> Path:
    """Normalize a root path into its registry key."""
    return Path(path).expanduser().resolve()


class WatcherManager:
    """Bounded set of watchers across multiple roots."""

    def __init__(
        self,
        *,
        max_watchers: int = DEFAULT_MAX_WATCHERS,
        default_config: WatcherConfig | Mapping[str, Any] | None = None,
        recovery_cooldown_sec: float = DEFAULT_RECOVERY_COOLDOWN_SEC,
        source_factory: SourceFactory = watchfiles_source_factory,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_watchers < 1:
            raise ConfigError.invalid_value("max_watchers", max_watchers, "must be at least 1")
        self._max_watchers = max_watchers
        self._default_config = coerce_watcher_config(default_config)
        self._recovery_cooldown_sec = recovery_cooldown_sec
        self._source_factory = source_factory
        self._clock = clock

        self._watchers: dict[Path, ManagedWatcherEntry] = {}
        self._recovery_tasks: dict[Path, asyncio.Task[None]] = {}
        self.signals: SignalEmitter[ManagerSignal] = SignalEmitter()

    @classmethod
    def from_config(cls, config: CodeWatchConfig, **kwargs: Any) -> WatcherManager:
        """Build a manager whose default watcher layer is config.watcher."""
        return cls(
            max_watchers=config.manager.max_watchers,
            default_config=config.watcher,
            recovery_cooldown_sec=config.manager.recovery_cooldown_sec,
            **kwargs,
        )

    def on(
        self, signal: ManagerSignal, handler: Callable[[ManagerEvent], Any]
    ) -> Callable[[], None]:
        """Observe a signal across all roots. Returns an unsubscribe callable."""
        return self.signals.on(signal, handler)

    # -------------------------------------------------------------------------
    # Start / stop
    # -------------------------------------------------------------------------

    async def start_watching(
        self,
        path: StrPath,
        on_changes: ChangeHandler | None = None,
        config: WatcherConfig | Mapping[str, Any] | None = None,
    ) -> bool:
        """Start watching a root directory.

        Returns:
            True if a watcher was started, False if the root was already watched.

        Raises:
            ConfigError: Root missing, not a directory, or invalid config.
            CapacityExceededError: max_watchers roots are already watched.
            RawSourceError: The change source failed to start.
        """
        root = resolve_root(path)
        if root in self._watchers:
            logger.info("already_watching", root=str(root))
            return False

        if not root.exists():
            raise ConfigError.root_not_found(str(root))
        if not root.is_dir():
            raise ConfigError.root_not_directory(str(root))

        if len(self._watchers) >= self._max_watchers:
            logger.warning(
                "watcher_capacity_exceeded",
                root=str(root),
                max_watchers=self._max_watchers,
            )
            raise CapacityExceededError.for_limit(self._max_watchers, str(root))

        effective = merge_watcher_configs(self._default_config, coerce_watcher_config(config))
        lifecycle = WatcherLifecycle(
            root=root,
            config=effective,
            source_factory=self._source_factory,
            clock=self._clock,
        )
        entry = ManagedWatcherEntry(
            root_path=root,
            lifecycle=lifecycle,
            config=effective,
            started_at=datetime.now(UTC),
            on_changes=on_changes,
        )
        self._subscribe(entry)

        # Reserve the slot before awaiting so concurrent starts respect the cap
        self._watchers[root] = entry
        try:
            await lifecycle.start()
        except BaseException:
            if self._watchers.get(root) is entry:
                del self._watchers[root]
            self._unsubscribe(entry)
            raise

        logger.info(
            "watching_started",
            root=str(root),
            watchers=len(self._watchers),
            max_watchers=self._max_watchers,
        )
        return True

    async def stop_watching(self, path: StrPath) -> bool:
        """Stop watching a root.

        A recovery waiting to restart the root is cancelled. Returns False if
        the root was neither watched nor recovering.
        """
        root = resolve_root(path)
        cancelled = await self._cancel_recovery(root)
        entry = self._watchers.get(root)
        if entry is None:
            if not cancelled:
                logger.debug("not_watching", root=str(root))
            return cancelled

        await self._teardown(entry)
        logger.info(
            "watching_stopped",
            root=str(root),
            watchers=len(self._watchers),
            max_watchers=self._max_watchers,
        )
        return True

    async def stop_all(self) -> None:
        """Stop every watcher concurrently. One failure does not block the rest."""
        logger.info("stopping_all_watchers", active=len(self._watchers))

        recoveries = list(self._recovery_tasks.values())
        for task in recoveries:
            task.cancel()
        if recoveries:
            await asyncio.gather(*recoveries, return_exceptions=True)

        entries = list(self._watchers.values())
        results = await asyncio.gather(
            *(self._teardown(entry) for entry in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("watcher_stop_failed", root=str(entry.root_path), error=str(result))

        logger.info("all_watchers_stopped")

    async def wait_for_recoveries(self) -> None:
        """Wait until in-flight recovery attempts have finished."""
        while self._recovery_tasks:
            await asyncio.gather(*list(self._recovery_tasks.values()), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Pause / resume
    # -------------------------------------------------------------------------

    def pause(self, path: StrPath) -> bool:
        entry = self._watchers.get(resolve_root(path))
        if entry is None:
            return False
        entry.lifecycle.pause()
        return True

    def resume(self, path: StrPath) -> bool:
        entry = self._watchers.get(resolve_root(path))
        if entry is None:
            return False
        entry.lifecycle.resume()
        return True

    def pause_all(self) -> None:
        for entry in list(self._watchers.values()):
            entry.lifecycle.pause()

    def resume_all(self) -> None:
        for entry in list(self._watchers.values()):
            entry.lifecycle.resume()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_watching(self, path: StrPath) -> bool:
        return resolve_root(path) in self._watchers

    def is_recovering(self, path: StrPath) -> bool:
        return resolve_root(path) in self._recovery_tasks

    def get_entry(self, path: StrPath) -> ManagedWatcherEntry | None:
        return self._watchers.get(resolve_root(path))

    def get_watcher_status(self, path: StrPath) -> WatcherStatus | None:
        entry = self._watchers.get(resolve_root(path))
        if entry is None:
            return None
        return entry.lifecycle.get_status()

    def get_all_watcher_statuses(self) -> dict[Path, WatcherStatus]:
        return {root: entry.lifecycle.get_status() for root, entry in self._watchers.items()}

    def get_watched_paths(self) -> list[Path]:
        return list(self._watchers)

    def get_watcher_count(self) -> int:
        return len(self._watchers)

    def get_max_watchers(self) -> int:
        return self._max_watchers

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit(
        self,
        signal: ManagerSignal,
        root: Path,
        *,
        changes: AggregatedChanges | None = None,
        error: CodeWatchError | None = None,
    ) -> None:
        self.signals.emit(signal, ManagerEvent(signal, root, changes=changes, error=error))

    def _subscribe(self, entry: ManagedWatcherEntry) -> None:
        signals = entry.lifecycle.signals
        root = entry.root_path

        entry.unsubscribers.append(
            signals.on(LifecycleSignal.CHANGES, lambda changes: self._on_changes(entry, changes))
        )
        entry.unsubscribers.append(
            signals.on(LifecycleSignal.ERROR, lambda error: self._on_error(entry, error))
        )
        for lifecycle_signal, manager_signal in _FORWARDED.items():
            entry.unsubscribers.append(
                signals.on(
                    lifecycle_signal,
                    lambda s=manager_signal: self._emit(s, root),
                )
            )

    def _unsubscribe(self, entry: ManagedWatcherEntry) -> None:
        for unsubscribe in entry.unsubscribers:
            unsubscribe()
        entry.unsubscribers.clear()

    async def _teardown(self, entry: ManagedWatcherEntry) -> None:
        """Deregister, stop (force-flushing pending changes) and drain callbacks."""
        if self._watchers.get(entry.root_path) is entry:
            del self._watchers[entry.root_path]
        try:
            await entry.lifecycle.stop()
        finally:
            if entry.dispatches:
                await asyncio.gather(*list(entry.dispatches), return_exceptions=True)
            self._unsubscribe(entry)

    def _on_changes(self, entry: ManagedWatcherEntry, changes: AggregatedChanges) -> None:
        logger.info("changes_detected", root=str(entry.root_path), total=changes.total)
        self._emit(ManagerSignal.CHANGES, entry.root_path, changes=changes)

        if entry.on_changes is None:
            return

        try:
            result = entry.on_changes(changes)
        except Exception as e:
            self._report_handler_error(entry, e)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(self._await_handler(entry, result))
            entry.dispatches.add(task)
            task.add_done_callback(entry.dispatches.discard)

    async def _await_handler(self, entry: ManagedWatcherEntry, result: Awaitable[None]) -> None:
        try:
            await result
        except Exception as e:
            self._report_handler_error(entry, e)

    def _report_handler_error(self, entry: ManagedWatcherEntry, exc: Exception) -> None:
        error = CallbackError.from_exception(str(entry.root_path), exc)
        logger.error(
            "change_handler_failed",
            root=str(entry.root_path),
            error=str(exc),
        )
        self._emit(ManagerSignal.HANDLER_ERROR, entry.root_path, error=error)

    def _on_error(self, entry: ManagedWatcherEntry, error: CodeWatchError) -> None:
        root = entry.root_path
        logger.error("watcher_error", root=str(root), error=error.message)
        self._emit(ManagerSignal.WATCHER_ERROR, root, error=error)

        if self._watchers.get(root) is not entry or root in self._recovery_tasks:
            return

        task = asyncio.ensure_future(self._attempt_recovery(entry))
        self._recovery_tasks[root] = task
        task.add_done_callback(lambda t: self._forget_recovery(root, t))

    async def _cancel_recovery(self, root: Path) -> bool:
        task = self._recovery_tasks.get(root)
        if task is None or task is asyncio.current_task():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("recovery_cancelled", root=str(root))
        return True

    def _forget_recovery(self, root: Path, task: asyncio.Task[None]) -> None:
        if self._recovery_tasks.get(root) is task:
            del self._recovery_tasks[root]

    async def _attempt_recovery(self, entry: ManagedWatcherEntry) -> None:
        root = entry.root_path
        logger.info(
            "recovery_started",
            root=str(root),
            cooldown_sec=self._recovery_cooldown_sec,
        )
        try:
            await self._teardown(entry)
            await asyncio.sleep(self._recovery_cooldown_sec)
            await self.start_watching(root, entry.on_changes, entry.config)
        except Exception as e:
            error = RecoveryError.from_exception(str(root), e)
            logger.error("recovery_failed", root=str(root), error=str(e))
            self._emit(ManagerSignal.RECOVERY_FAILED, root, error=error)
            return

        logger.info("recovery_succeeded", root=str(root))
        self._emit(ManagerSignal.RECOVERY_SUCCESS, root)
