"""Shared fixtures for watch tests: an in-memory change source and a fake clock."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from codewatch.config.models import WatcherConfig
from codewatch.watch.events import ChangeKind
from codewatch.watch.source import SourceHandlers


@dataclass
class FakeClock:
    """Monotonic clock advanced by hand."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeSource:
    """RawChangeSource whose notifications are driven by the test."""

    root: Path
    config: WatcherConfig
    handlers: SourceHandlers
    auto_ready: bool = True
    start_error: Exception | None = None
    close_error: Exception | None = None

    started: bool = False
    closed: bool = False

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True
        if self.auto_ready:
            self.handlers.on_ready()

    async def close(self) -> None:
        self.closed = True
        self.handlers.on_close()
        if self.close_error is not None:
            raise self.close_error

    def ready(self) -> None:
        self.handlers.on_ready()

    def emit(self, kind: ChangeKind, rel_path: str) -> None:
        self.handlers.on_change(kind, rel_path)

    def fail(self, exc: Exception) -> None:
        self.handlers.on_error(exc)


@dataclass
class FakeSourceFactory:
    """SourceFactory recording every source it creates.

    start_failures: number of upcoming sources whose start() raises.
    """

    auto_ready: bool = True
    start_failures: int = 0
    close_error: Exception | None = None
    sources: list[FakeSource] = field(default_factory=list)

    def __call__(self, root: Path, config: WatcherConfig, handlers: SourceHandlers) -> FakeSource:
        start_error = None
        if self.start_failures > 0:
            self.start_failures -= 1
            start_error = OSError("inotify watch limit reached")
        source = FakeSource(
            root=root,
            config=config,
            handlers=handlers,
            auto_ready=self.auto_ready,
            start_error=start_error,
            close_error=self.close_error,
        )
        self.sources.append(source)
        return source

    def for_root(self, root: Path) -> list[FakeSource]:
        return [s for s in self.sources if s.root == root.resolve()]

    def latest(self, root: Path) -> FakeSource:
        return self.for_root(root)[-1]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source_factory() -> FakeSourceFactory:
    return FakeSourceFactory()
