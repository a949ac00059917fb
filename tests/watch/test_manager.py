"""Tests for WatcherManager.

Tests cover:
- Registry keyed by resolved root, capacity cap, duplicate starts
- Three-tier watcher config merge
- Caller callback dispatch and failure isolation
- Path-tagged signal forwarding
- Single-shot recovery after a source error
- stop_all teardown
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from codewatch.config.models import CodeWatchConfig, ManagerConfig, WatcherConfig
from codewatch.core.errors import (
    CallbackError,
    CapacityExceededError,
    ConfigError,
    ErrorCode,
    RawSourceError,
    RecoveryError,
)
from codewatch.watch.events import AggregatedChanges, ChangeKind, WatcherState
from codewatch.watch.manager import ManagerEvent, WatcherManager, resolve_root
from codewatch.watch.signals import ManagerSignal
from tests.watch.conftest import FakeSourceFactory


class EventLog:
    """Records manager events for every signal."""

    def __init__(self, manager: WatcherManager) -> None:
        self.events: list[ManagerEvent] = []
        for signal in ManagerSignal:
            manager.on(signal, self.events.append)

    def of(self, signal: ManagerSignal) -> list[ManagerEvent]:
        return [e for e in self.events if e.signal is signal]


@pytest.fixture
def manager(source_factory: FakeSourceFactory) -> WatcherManager:
    return WatcherManager(
        max_watchers=3,
        recovery_cooldown_sec=0.01,
        source_factory=source_factory,
    )


@pytest.fixture
def make_roots(tmp_path: Path) -> Callable[[int], list[Path]]:
    def make(count: int) -> list[Path]:
        roots = []
        for i in range(count):
            root = tmp_path / f"repo{i}"
            root.mkdir()
            roots.append(root)
        return roots

    return make


class TestRegistry:
    """start_watching / stop_watching keep one entry per resolved root."""

    @pytest.mark.asyncio
    async def test_given_directory_when_started_then_registered_and_ready(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """start_watching registers the resolved root and forwards ready."""
        log = EventLog(manager)

        started = await manager.start_watching(tmp_path)

        assert started is True
        assert manager.is_watching(tmp_path)
        assert manager.get_watcher_count() == 1
        assert manager.get_watched_paths() == [resolve_root(tmp_path)]
        assert [e.root_path for e in log.of(ManagerSignal.WATCHER_READY)] == [
            resolve_root(tmp_path)
        ]
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_watched_root_when_started_again_then_noop(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """An equivalent spelling of a watched root is a no-op."""
        await manager.start_watching(tmp_path)

        again = await manager.start_watching(f"{tmp_path}/./")

        assert again is False
        assert manager.get_watcher_count() == 1
        assert len(source_factory.sources) == 1
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_watched_root_deleted_when_started_again_then_noop(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A registered root is a no-op even after its directory disappears."""
        root = tmp_path / "repo"
        root.mkdir()
        await manager.start_watching(root)
        root.rmdir()

        again = await manager.start_watching(root)

        assert again is False
        assert manager.is_watching(root)
        assert len(source_factory.sources) == 1
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_missing_root_when_started_then_config_error(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """A missing root raises CONFIG_ROOT_NOT_FOUND."""
        with pytest.raises(ConfigError) as exc_info:
            await manager.start_watching(tmp_path / "missing")

        assert exc_info.value.code is ErrorCode.CONFIG_ROOT_NOT_FOUND
        assert manager.get_watcher_count() == 0

    @pytest.mark.asyncio
    async def test_given_file_root_when_started_then_config_error(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """A file root raises CONFIG_ROOT_NOT_DIRECTORY."""
        file_path = tmp_path / "file.py"
        file_path.write_text("x = 1\n")

        with pytest.raises(ConfigError) as exc_info:
            await manager.start_watching(file_path)

        assert exc_info.value.code is ErrorCode.CONFIG_ROOT_NOT_DIRECTORY

    @pytest.mark.asyncio
    async def test_given_unwatched_root_when_stopped_then_false(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """Stopping an unknown root returns False."""
        assert await manager.stop_watching(tmp_path) is False

    @pytest.mark.asyncio
    async def test_given_watched_root_when_stopped_then_deregistered_and_closed(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """stop_watching deregisters the root and closes its source."""
        log = EventLog(manager)
        await manager.start_watching(tmp_path)

        stopped = await manager.stop_watching(tmp_path)

        assert stopped is True
        assert not manager.is_watching(tmp_path)
        assert manager.get_watcher_status(tmp_path) is None
        assert source_factory.sources[0].closed
        assert len(log.of(ManagerSignal.WATCHER_STOPPED)) == 1

    @pytest.mark.asyncio
    async def test_given_source_start_fails_then_not_registered(
        self, tmp_path: Path
    ) -> None:
        """A failed source start leaves nothing registered."""
        factory = FakeSourceFactory(start_failures=1)
        manager = WatcherManager(source_factory=factory)

        with pytest.raises(RawSourceError):
            await manager.start_watching(tmp_path)

        assert not manager.is_watching(tmp_path)

        # The slot is free again
        assert await manager.start_watching(tmp_path) is True
        await manager.stop_all()

    def test_given_zero_max_watchers_then_config_error(self) -> None:
        """max_watchers must be positive."""
        with pytest.raises(ConfigError):
            WatcherManager(max_watchers=0)


class TestCapacity:
    """At most max_watchers roots are watched at once."""

    @pytest.mark.asyncio
    async def test_given_full_registry_when_started_then_capacity_error(
        self, source_factory: FakeSourceFactory, make_roots: Callable[[int], list[Path]]
    ) -> None:
        """A new root beyond max_watchers raises CapacityExceededError."""
        manager = WatcherManager(max_watchers=2, source_factory=source_factory)
        a, b, c = make_roots(3)
        await manager.start_watching(a)
        await manager.start_watching(b)

        with pytest.raises(CapacityExceededError) as exc_info:
            await manager.start_watching(c)

        assert exc_info.value.details["max_watchers"] == 2
        assert "Maximum number of watchers (2) reached" in exc_info.value.message
        assert manager.get_watched_paths() == [resolve_root(a), resolve_root(b)]
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_full_registry_when_watched_root_started_then_noop_not_error(
        self, source_factory: FakeSourceFactory, make_roots: Callable[[int], list[Path]]
    ) -> None:
        """A full registry still treats an already watched root as a no-op."""
        manager = WatcherManager(max_watchers=1, source_factory=source_factory)
        (a,) = make_roots(1)
        await manager.start_watching(a)

        assert await manager.start_watching(a) is False
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_concurrent_starts_then_cap_respected(
        self, source_factory: FakeSourceFactory, make_roots: Callable[[int], list[Path]]
    ) -> None:
        """Concurrent starts cannot overshoot the cap."""
        manager = WatcherManager(max_watchers=2, source_factory=source_factory)
        roots = make_roots(3)

        results = await asyncio.gather(
            *(manager.start_watching(root) for root in roots),
            return_exceptions=True,
        )

        assert sum(1 for r in results if r is True) == 2
        assert sum(1 for r in results if isinstance(r, CapacityExceededError)) == 1
        assert manager.get_watcher_count() == 2
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_stopped_root_then_slot_reusable(
        self, source_factory: FakeSourceFactory, make_roots: Callable[[int], list[Path]]
    ) -> None:
        """Stopping a root frees its slot."""
        manager = WatcherManager(max_watchers=1, source_factory=source_factory)
        a, b = make_roots(2)
        await manager.start_watching(a)
        await manager.stop_watching(a)

        assert await manager.start_watching(b) is True
        assert manager.get_max_watchers() == 1
        await manager.stop_all()


class TestConfigMerge:
    """Per-call > manager default > hard defaults, field by field."""

    @pytest.mark.asyncio
    async def test_given_manager_default_and_per_call_then_fields_merged(
        self, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """Manager defaults and per-call config merge field by field."""
        manager = WatcherManager(
            default_config={"debounce_ms": 200, "burst_threshold": 10},
            source_factory=source_factory,
        )

        await manager.start_watching(tmp_path, config={"burst_threshold": 7})

        entry = manager.get_entry(tmp_path)
        assert entry is not None
        assert entry.config.debounce_ms == 200
        assert entry.config.burst_threshold == 7
        assert entry.config.burst_debounce_ms == 5000
        assert entry.config.burst_window_ms == 2000
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_per_call_debounce_then_overrides_manager_default(
        self, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A per-call field wins over the manager default."""
        manager = WatcherManager(
            default_config=WatcherConfig(debounce_ms=200),
            source_factory=source_factory,
        )

        await manager.start_watching(tmp_path, config=WatcherConfig(debounce_ms=50))

        entry = manager.get_entry(tmp_path)
        assert entry is not None
        assert entry.config.debounce_ms == 50
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_no_layers_then_hard_defaults(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """Without overrides the model defaults apply."""
        await manager.start_watching(tmp_path)

        entry = manager.get_entry(tmp_path)
        assert entry is not None
        assert entry.config.model_dump() == WatcherConfig().model_dump()
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_invalid_per_call_config_then_config_error_and_not_registered(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """Invalid per-call config raises ConfigError before registration."""
        with pytest.raises(ConfigError) as exc_info:
            await manager.start_watching(tmp_path, config={"debounce_ms": 0})

        assert exc_info.value.details["field"] == "debounce_ms"
        assert not manager.is_watching(tmp_path)

    @pytest.mark.asyncio
    async def test_from_config_uses_manager_and_watcher_sections(
        self, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """from_config reads capacity, cooldown and watcher defaults."""
        config = CodeWatchConfig(
            watcher=WatcherConfig(debounce_ms=300),
            manager=ManagerConfig(max_watchers=4),
        )
        manager = WatcherManager.from_config(config, source_factory=source_factory)

        await manager.start_watching(tmp_path)

        entry = manager.get_entry(tmp_path)
        assert manager.get_max_watchers() == 4
        assert entry is not None
        assert entry.config.debounce_ms == 300
        await manager.stop_all()


class TestChangeDispatch:
    """Batches are tagged with the root and handed to the caller's callback."""

    @pytest.mark.asyncio
    async def test_given_quick_changes_then_one_tagged_batch_after_debounce(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """Quick changes reach the callback and observers as one tagged batch."""
        log = EventLog(manager)
        received: list[AggregatedChanges] = []
        await manager.start_watching(
            tmp_path,
            received.append,
            {"debounce_ms": 100, "burst_threshold": 5, "burst_window_ms": 1000},
        )
        source = source_factory.latest(tmp_path)

        source.emit(ChangeKind.ADDED, "a.ts")
        source.emit(ChangeKind.MODIFIED, "b.ts")
        source.emit(ChangeKind.REMOVED, "c.ts")
        await asyncio.sleep(0.25)

        expected = AggregatedChanges(
            added=frozenset({"a.ts"}),
            modified=frozenset({"b.ts"}),
            removed=frozenset({"c.ts"}),
        )
        assert received == [expected]
        batches = log.of(ManagerSignal.CHANGES)
        assert len(batches) == 1
        assert batches[0].root_path == resolve_root(tmp_path)
        assert batches[0].changes == expected
        assert log.of(ManagerSignal.BURST_MODE_START) == []
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_pending_changes_when_stopped_then_async_callback_completes(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """stop_watching waits for the async callback of the final batch."""
        received: list[AggregatedChanges] = []

        async def reindex(changes: AggregatedChanges) -> None:
            await asyncio.sleep(0.01)
            received.append(changes)

        await manager.start_watching(tmp_path, reindex)
        source_factory.latest(tmp_path).emit(ChangeKind.MODIFIED, "main.py")

        await manager.stop_watching(tmp_path)

        assert received == [AggregatedChanges(modified=frozenset({"main.py"}))]

    @pytest.mark.asyncio
    async def test_given_sync_callback_raises_then_handler_error_and_watcher_survives(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A raising sync callback emits handler_error and keeps watching."""
        log = EventLog(manager)

        def broken(changes: AggregatedChanges) -> None:
            raise ValueError("index unavailable")

        await manager.start_watching(tmp_path, broken, {"debounce_ms": 20})
        source_factory.latest(tmp_path).emit(ChangeKind.ADDED, "a.py")
        await asyncio.sleep(0.08)

        errors = log.of(ManagerSignal.HANDLER_ERROR)
        assert len(errors) == 1
        assert isinstance(errors[0].error, CallbackError)
        assert errors[0].error.details["reason"] == "index unavailable"
        assert manager.get_watcher_status(tmp_path).state is WatcherState.ACTIVE  # type: ignore[union-attr]
        assert log.of(ManagerSignal.RECOVERY_SUCCESS) == []
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_async_callback_raises_then_handler_error(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A raising async callback emits handler_error."""
        log = EventLog(manager)

        async def broken(changes: AggregatedChanges) -> None:
            raise RuntimeError("async failure")

        await manager.start_watching(tmp_path, broken, {"debounce_ms": 20})
        source_factory.latest(tmp_path).emit(ChangeKind.ADDED, "a.py")
        await asyncio.sleep(0.08)

        errors = log.of(ManagerSignal.HANDLER_ERROR)
        assert len(errors) == 1
        assert errors[0].error is not None
        assert errors[0].error.code is ErrorCode.WATCHER_CALLBACK_ERROR
        assert manager.is_watching(tmp_path)
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_failing_callback_on_one_root_then_other_root_unaffected(
        self,
        manager: WatcherManager,
        source_factory: FakeSourceFactory,
        make_roots: Callable[[int], list[Path]],
    ) -> None:
        """A callback failure on one root does not affect another."""
        a, b = make_roots(2)
        received: list[AggregatedChanges] = []

        def broken(changes: AggregatedChanges) -> None:
            raise ValueError("boom")

        await manager.start_watching(a, broken, {"debounce_ms": 20})
        await manager.start_watching(b, received.append, {"debounce_ms": 20})
        source_factory.latest(a).emit(ChangeKind.ADDED, "a.py")
        source_factory.latest(b).emit(ChangeKind.ADDED, "b.py")
        await asyncio.sleep(0.08)

        assert received == [AggregatedChanges(added=frozenset({"b.py"}))]
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_failing_observer_then_other_observers_still_called(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A raising observer does not stop delivery to the others."""
        seen: list[ManagerEvent] = []

        def broken_observer(event: ManagerEvent) -> None:
            raise RuntimeError("observer failure")

        manager.on(ManagerSignal.CHANGES, broken_observer)
        manager.on(ManagerSignal.CHANGES, seen.append)
        await manager.start_watching(tmp_path)
        source_factory.latest(tmp_path).emit(ChangeKind.ADDED, "a.py")

        await manager.stop_watching(tmp_path)

        assert len(seen) == 1


class TestPauseResume:
    """Pause/resume delegate to the lifecycle and are re-emitted with the root."""

    @pytest.mark.asyncio
    async def test_given_paused_root_then_changes_dropped_until_resumed(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """Changes during pause are dropped; later ones are delivered."""
        log = EventLog(manager)
        received: list[AggregatedChanges] = []
        await manager.start_watching(tmp_path, received.append)
        source = source_factory.latest(tmp_path)

        assert manager.pause(tmp_path) is True
        source.emit(ChangeKind.ADDED, "dropped.py")
        assert manager.resume(tmp_path) is True
        source.emit(ChangeKind.ADDED, "kept.py")
        await manager.stop_watching(tmp_path)

        assert received == [AggregatedChanges(added=frozenset({"kept.py"}))]
        assert len(log.of(ManagerSignal.WATCHER_PAUSED)) == 1
        assert len(log.of(ManagerSignal.WATCHER_RESUMED)) == 1

    @pytest.mark.asyncio
    async def test_given_unknown_root_when_paused_then_false(
        self, manager: WatcherManager, tmp_path: Path
    ) -> None:
        """pause and resume return False for unknown roots."""
        assert manager.pause(tmp_path) is False
        assert manager.resume(tmp_path) is False

    @pytest.mark.asyncio
    async def test_pause_all_and_resume_all(
        self, manager: WatcherManager, make_roots: Callable[[int], list[Path]]
    ) -> None:
        """pause_all and resume_all reach every watcher."""
        roots = make_roots(2)
        for root in roots:
            await manager.start_watching(root)

        manager.pause_all()
        paused = {s.state for s in manager.get_all_watcher_statuses().values()}
        manager.resume_all()
        resumed = {s.state for s in manager.get_all_watcher_statuses().values()}

        assert paused == {WatcherState.PAUSED}
        assert resumed == {WatcherState.ACTIVE}
        await manager.stop_all()


class TestSignalForwarding:
    """Every lifecycle signal is re-emitted tagged with its root."""

    @pytest.mark.asyncio
    async def test_given_burst_then_burst_signals_tagged_with_root(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """Burst start and end are forwarded with the root path."""
        log = EventLog(manager)
        await manager.start_watching(tmp_path, config={"burst_threshold": 3})
        source = source_factory.latest(tmp_path)

        for i in range(5):
            source.emit(ChangeKind.MODIFIED, f"f{i}.py")

        starts = log.of(ManagerSignal.BURST_MODE_START)
        assert [e.root_path for e in starts] == [resolve_root(tmp_path)]
        assert manager.get_watcher_status(tmp_path).is_burst_mode  # type: ignore[union-attr]
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_stopped_watcher_then_no_further_signals(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A stopped root emits nothing more."""
        log = EventLog(manager)
        await manager.start_watching(tmp_path)
        source = source_factory.latest(tmp_path)
        await manager.stop_watching(tmp_path)
        count = len(log.events)

        source.emit(ChangeKind.ADDED, "late.py")
        source.fail(OSError("late"))

        assert len(log.events) == count


class TestRecovery:
    """A source error triggers one restart after the cooldown."""

    @pytest.mark.asyncio
    async def test_given_source_error_then_restarted_with_original_callback(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A source error restarts the root with its original callback."""
        log = EventLog(manager)
        received: list[AggregatedChanges] = []
        await manager.start_watching(tmp_path, received.append, {"debounce_ms": 500})
        original = source_factory.latest(tmp_path)

        original.fail(OSError("watch descriptor lost"))
        await manager.wait_for_recoveries()

        assert len(log.of(ManagerSignal.WATCHER_ERROR)) == 1
        assert len(log.of(ManagerSignal.RECOVERY_SUCCESS)) == 1
        assert original.closed
        assert len(source_factory.for_root(tmp_path)) == 2
        assert manager.is_watching(tmp_path)

        entry = manager.get_entry(tmp_path)
        assert entry is not None
        assert entry.config.debounce_ms == 500

        source_factory.latest(tmp_path).emit(ChangeKind.ADDED, "after.py")
        await manager.stop_watching(tmp_path)
        assert received == [AggregatedChanges(added=frozenset({"after.py"}))]

    @pytest.mark.asyncio
    async def test_given_repeated_error_during_recovery_then_single_restart(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """Errors during an in-flight recovery do not start another one."""
        log = EventLog(manager)
        await manager.start_watching(tmp_path)
        original = source_factory.latest(tmp_path)

        original.fail(OSError("first"))
        original.fail(OSError("second"))
        await manager.wait_for_recoveries()

        assert len(log.of(ManagerSignal.RECOVERY_SUCCESS)) == 1
        assert len(source_factory.for_root(tmp_path)) == 2
        await manager.stop_all()

    @pytest.mark.asyncio
    async def test_given_restart_fails_then_recovery_failed_and_deregistered(
        self, manager: WatcherManager, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """A failed restart emits recovery_failed and leaves the root unwatched."""
        log = EventLog(manager)
        await manager.start_watching(tmp_path)
        source_factory.start_failures = 1

        source_factory.latest(tmp_path).fail(OSError("lost"))
        await manager.wait_for_recoveries()

        failures = log.of(ManagerSignal.RECOVERY_FAILED)
        assert len(failures) == 1
        assert isinstance(failures[0].error, RecoveryError)
        assert failures[0].root_path == resolve_root(tmp_path)
        assert log.of(ManagerSignal.RECOVERY_SUCCESS) == []
        assert not manager.is_watching(tmp_path)
        assert manager.get_watcher_count() == 0

    @pytest.mark.asyncio
    async def test_given_recovery_in_cooldown_when_stopped_then_not_restarted(
        self, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """stop_watching during the cooldown cancels the pending restart."""
        manager = WatcherManager(recovery_cooldown_sec=5.0, source_factory=source_factory)
        log = EventLog(manager)
        await manager.start_watching(tmp_path)
        source_factory.latest(tmp_path).fail(OSError("lost"))
        await asyncio.sleep(0.05)
        assert manager.is_recovering(tmp_path)

        stopped = await manager.stop_watching(tmp_path)

        assert stopped is True
        assert not manager.is_recovering(tmp_path)
        assert not manager.is_watching(tmp_path)
        assert len(source_factory.for_root(tmp_path)) == 1
        assert log.of(ManagerSignal.RECOVERY_SUCCESS) == []
        assert log.of(ManagerSignal.RECOVERY_FAILED) == []
        assert await manager.stop_watching(tmp_path) is False

    @pytest.mark.asyncio
    async def test_given_recovery_in_cooldown_when_stop_all_then_not_restarted(
        self, source_factory: FakeSourceFactory, tmp_path: Path
    ) -> None:
        """stop_all cancels a recovery waiting out its cooldown."""
        manager = WatcherManager(recovery_cooldown_sec=5.0, source_factory=source_factory)
        log = EventLog(manager)
        await manager.start_watching(tmp_path)

        source_factory.latest(tmp_path).fail(OSError("lost"))
        await asyncio.sleep(0.05)

        assert manager.is_recovering(tmp_path)
        assert not manager.is_watching(tmp_path)

        await manager.stop_all()

        assert not manager.is_recovering(tmp_path)
        assert len(source_factory.for_root(tmp_path)) == 1
        assert log.of(ManagerSignal.RECOVERY_SUCCESS) == []
        assert log.of(ManagerSignal.RECOVERY_FAILED) == []


class TestStopAll:
    """stop_all tears down every watcher even if one fails."""

    @pytest.mark.asyncio
    async def test_given_one_close_fails_then_all_deregistered(
        self,
        manager: WatcherManager,
        source_factory: FakeSourceFactory,
        make_roots: Callable[[int], list[Path]],
    ) -> None:
        """One failing close does not keep other roots registered."""
        a, b, c = make_roots(3)
        for root in (a, b, c):
            await manager.start_watching(root)
        source_factory.latest(b).close_error = RuntimeError("close failed")

        await manager.stop_all()

        assert manager.get_watcher_count() == 0
        assert all(s.closed for s in source_factory.sources)

    @pytest.mark.asyncio
    async def test_given_pending_changes_when_stop_all_then_flushed_per_root(
        self,
        manager: WatcherManager,
        source_factory: FakeSourceFactory,
        make_roots: Callable[[int], list[Path]],
    ) -> None:
        """stop_all flushes each root's pending changes."""
        log = EventLog(manager)
        a, b = make_roots(2)
        await manager.start_watching(a)
        await manager.start_watching(b)
        source_factory.latest(a).emit(ChangeKind.ADDED, "a.py")
        source_factory.latest(b).emit(ChangeKind.REMOVED, "b.py")

        await manager.stop_all()

        batches = {e.root_path: e.changes for e in log.of(ManagerSignal.CHANGES)}
        assert batches == {
            resolve_root(a): AggregatedChanges(added=frozenset({"a.py"})),
            resolve_root(b): AggregatedChanges(removed=frozenset({"b.py"})),
        }

    @pytest.mark.asyncio
    async def test_given_no_watchers_when_stop_all_then_noop(
        self, manager: WatcherManager
    ) -> None:
        """stop_all on an empty manager does nothing."""
        await manager.stop_all()

        assert manager.get_watcher_count() == 0
