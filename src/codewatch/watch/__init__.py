"""CodeWatch watch engine - change aggregation, watcher lifecycle and registry."""

from codewatch.watch.aggregator import ChangeAggregator
from codewatch.watch.events import (
    AggregatedChanges,
    ChangeKind,
    FileChangeEvent,
    WatcherState,
    WatcherStatus,
)
from codewatch.watch.lifecycle import WatcherLifecycle
from codewatch.watch.manager import ManagedWatcherEntry, ManagerEvent, WatcherManager
from codewatch.watch.signals import LifecycleSignal, ManagerSignal, SignalEmitter
from codewatch.watch.source import RawChangeSource, SourceHandlers, WatchfilesSource

__all__ = [
    "AggregatedChanges",
    "ChangeAggregator",
    "ChangeKind",
    "FileChangeEvent",
    "LifecycleSignal",
    "ManagedWatcherEntry",
    "ManagerEvent",
    "ManagerSignal",
    "RawChangeSource",
    "SignalEmitter",
    "SourceHandlers",
    "WatcherLifecycle",
    "WatcherManager",
    "WatcherState",
    "WatcherStatus",
    "WatchfilesSource",
]
