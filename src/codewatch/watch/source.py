"""Raw change sources.

A RawChangeSource reports add/modify/remove notifications for paths under one
root, plus ready/error/close lifecycle signals, through a SourceHandlers
bundle. The aggregation core only depends on the protocol.

WatchfilesSource is the default implementation:
- Uses watchfiles.awatch (native notify backend) in a background task
- Applies the configured ignore globs, extension allowlist and max depth
- Never reports symlinks or anything under HARDCODED_DIRS
- A failing awatch loop is reported once through on_error and not retried;
  retry policy belongs to the manager
"""

from __future__ import annotations

import asyncio
import contextlib
import fnmatch
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Protocol

import structlog
from watchfiles import Change, awatch

from codewatch.config.models import WatcherConfig
from codewatch.core.excludes import is_hardcoded_dir
from codewatch.watch.events import ChangeKind

logger = structlog.get_logger()

# watchfiles batching: events reach the aggregator within ~RAW_DEBOUNCE_MS
RAW_DEBOUNCE_MS = 50
RAW_STEP_MS = 25
STOP_TIMEOUT_SEC = 2.0


@dataclass
class SourceHandlers:
    """Callbacks a source invokes. All are called on the event loop."""

    on_change: Callable[[ChangeKind, str], None]
    on_ready: Callable[[], None]
    on_error: Callable[[BaseException], None]
    on_close: Callable[[], None]


class RawChangeSource(Protocol):
    """Per-root notification channel."""

    async def start(self) -> None: ...

    async def close(self) -> None: ...


SourceFactory = Callable[[Path, WatcherConfig, SourceHandlers], RawChangeSource]


def matches_ignore(rel_path: str, pattern: str) -> bool:
    """Check a root-relative POSIX path against one ignore glob.

    - "dir/**" matches anything below a directory called dir (at any depth
      when dir has no slash)
    - "**/x" matches x at any depth
    - Patterns without a slash match the basename or the whole path
    """
    path = PurePosixPath(rel_path)

    if pattern.endswith("/**"):
        dir_pattern = pattern[:-3]
        ancestors = [p for p in path.parents if str(p) != "."]
        if dir_pattern.startswith("**/"):
            # "**/" also matches zero leading directories
            anywhere = dir_pattern[3:]
            return any(
                fnmatch.fnmatch(str(a), dir_pattern) or fnmatch.fnmatch(str(a), anywhere)
                for a in ancestors
            )
        if "/" in dir_pattern:
            return any(fnmatch.fnmatch(str(a), dir_pattern) for a in ancestors)
        return any(fnmatch.fnmatch(part, dir_pattern) for part in path.parts[:-1])

    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return matches_ignore(rel_path, pattern[3:])
    if "/" not in pattern:
        return fnmatch.fnmatch(path.name, pattern)
    return False


def should_report(rel_path: str, config: WatcherConfig) -> bool:
    """Apply depth, hardcoded-dir, ignore-glob and extension filters."""
    path = PurePosixPath(rel_path)
    if len(path.parts) - 1 > config.max_depth:
        return False
    if any(is_hardcoded_dir(part) for part in path.parts[:-1]):
        return False
    if any(matches_ignore(rel_path, pattern) for pattern in config.ignore_patterns):
        return False
    return path.suffix.lower() in config.supported_extensions


@dataclass
class WatchfilesSource:
    """RawChangeSource backed by watchfiles.awatch."""

    root: Path
    config: WatcherConfig
    handlers: SourceHandlers

    _watch_task: asyncio.Task[None] | None = field(default=None, init=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _closed: bool = field(default=False, init=False)

    async def start(self) -> None:
        """Start the background watch loop."""
        if self._watch_task is not None:
            return

        self._stop_event.clear()
        self._closed = False
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(
            "change_source_started",
            root=str(self.root),
            extensions=len(self.config.supported_extensions),
            ignore_patterns=len(self.config.ignore_patterns),
            max_depth=self.config.max_depth,
        )

    async def close(self) -> None:
        """Stop the watch loop and release the OS watch."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()

        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._watch_task, timeout=STOP_TIMEOUT_SEC)
            self._watch_task = None

        logger.info("change_source_closed", root=str(self.root))
        self.handlers.on_close()

    async def _watch_loop(self) -> None:
        try:
            self.handlers.on_ready()
            async for changes in awatch(
                self.root,
                watch_filter=None,
                debounce=RAW_DEBOUNCE_MS,
                step=RAW_STEP_MS,
                stop_event=self._stop_event,
                recursive=True,
                ignore_permission_denied=True,
            ):
                self._handle_changes(changes)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._stop_event.is_set():
                return
            logger.error("change_source_failed", root=str(self.root), error=str(e))
            self.handlers.on_error(e)

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        # One raw batch is an unordered set; group per path first
        by_path: dict[str, set[Change]] = {}
        for change_type, path_str in changes:
            by_path.setdefault(path_str, set()).add(change_type)

        for path_str in sorted(by_path):
            path = Path(path_str)
            try:
                rel_path = path.relative_to(self.root).as_posix()
            except ValueError:
                continue

            if path.is_symlink():
                continue
            exists = path.exists()
            if exists and path.is_dir():
                continue

            if not should_report(rel_path, self.config):
                logger.debug("path_ignored", root=str(self.root), path=rel_path)
                continue

            self.handlers.on_change(_resolve_kind(by_path[path_str], exists), rel_path)


def _resolve_kind(kinds: set[Change], exists: bool) -> ChangeKind:
    """Collapse the kinds seen for one path in a raw batch using its current state."""
    if not exists:
        return ChangeKind.REMOVED
    if Change.added in kinds:
        return ChangeKind.ADDED
    return ChangeKind.MODIFIED


def watchfiles_source_factory(
    root: Path, config: WatcherConfig, handlers: SourceHandlers
) -> RawChangeSource:
    return WatchfilesSource(root=root, config=config, handlers=handlers)
