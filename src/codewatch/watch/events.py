"""Change, batch and status types shared by the watch components."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class ChangeKind(Enum):
    """Kind of a raw per-path notification."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class FileChangeEvent:
    """A single raw change for one path under a watched root."""

    kind: ChangeKind
    relative_path: str
    absolute_path: Path


@dataclass(frozen=True)
class AggregatedChanges:
    """One debounced batch. Each path appears in exactly one set."""

    added: frozenset[str] = field(default_factory=frozenset)
    modified: frozenset[str] = field(default_factory=frozenset)
    removed: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_events(cls, events: Iterable[FileChangeEvent]) -> AggregatedChanges:
        """Partition coalesced events by kind."""
        buckets: dict[ChangeKind, set[str]] = {kind: set() for kind in ChangeKind}
        for event in events:
            buckets[event.kind].add(event.relative_path)
        return cls(
            added=frozenset(buckets[ChangeKind.ADDED]),
            modified=frozenset(buckets[ChangeKind.MODIFIED]),
            removed=frozenset(buckets[ChangeKind.REMOVED]),
        )

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.removed)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def all_paths(self) -> list[str]:
        return sorted(self.added | self.modified | self.removed)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "added": sorted(self.added),
            "modified": sorted(self.modified),
            "removed": sorted(self.removed),
        }


class WatcherState(Enum):
    """Watcher lifecycle state."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERRORED = "errored"


@dataclass
class WatcherStatus:
    """Point-in-time snapshot of one watcher."""

    root_path: Path
    state: WatcherState
    pending_changes: int = 0
    is_burst_mode: bool = False
    last_change_time: datetime | None = None
    last_error: str | None = None

    @property
    def is_watching(self) -> bool:
        return self.state is WatcherState.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_path": str(self.root_path),
            "state": self.state.value,
            "is_watching": self.is_watching,
            "pending_changes": self.pending_changes,
            "is_burst_mode": self.is_burst_mode,
            "last_change_time": (
                self.last_change_time.isoformat() if self.last_change_time else None
            ),
            "last_error": self.last_error,
        }
