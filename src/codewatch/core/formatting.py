"""Short human-readable text for change batches and watcher status.

Batch summaries stay on one terminal line; format_status is the only
multi-line output.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codewatch.watch.events import AggregatedChanges, WatcherStatus

# Display name per lowercase suffix; unknown suffixes show upper-cased
FILE_TYPE_NAMES: dict[str, str] = {
    ".py": "Python",
    ".pyi": "Python stub",
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".jsx": "JSX",
    ".ts": "TypeScript",
    ".tsx": "TSX",
    ".json": "JSON",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".toml": "TOML",
    ".md": "Markdown",
    ".rs": "Rust",
    ".go": "Go",
    ".java": "Java",
    ".rb": "Ruby",
    ".c": "C",
    ".h": "C header",
    ".cpp": "C++",
}


def file_type_name(path: str) -> str:
    suffix = PurePosixPath(path).suffix.lower()
    if not suffix:
        return "extensionless"
    return FILE_TYPE_NAMES.get(suffix, suffix[1:].upper())


def count_noun(count: int, noun: str) -> str:
    """'1 file', '0 files', '4 files'."""
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def shorten_path(path: str, width: int = 32) -> str:
    """Drop the middle directories of a long root-relative path.

    ``src/codewatch/watch/internal/aggregator.py`` becomes
    ``src/.../aggregator.py``; if that is still too wide only the file
    name is kept.
    """
    if len(path) <= width:
        return path
    parts = PurePosixPath(path).parts
    if len(parts) > 2:
        collapsed = f"{parts[0]}/.../{parts[-1]}"
        if len(collapsed) <= width:
            return collapsed
    return parts[-1]


def preview_paths(paths: Sequence[str], *, limit: int = 3, width: int = 72) -> str:
    """First few paths of a batch followed by a '+N more' tail."""
    shown = [shorten_path(p) for p in paths[:limit]]
    while len(shown) > 1 and len(", ".join(shown)) > width:
        shown.pop()
    hidden = len(paths) - len(shown)
    if not hidden:
        return ", ".join(shown)
    return ", ".join([*shown, f"+{hidden} more"])


def summarize_changes_by_type(paths: Iterable[str], *, max_types: int = 3) -> str:
    """Counts per file type, most frequent first.

    ``["a.py", "b.py", "c.ts"]`` gives ``"2 Python files, 1 TypeScript file"``.
    Types beyond ``max_types`` are folded into a trailing ``"N more"``.
    """
    by_type = Counter(file_type_name(p) for p in paths)
    top = by_type.most_common(max_types)
    parts = [count_noun(n, f"{name} file") for name, n in top]
    folded = by_type.total() - sum(n for _, n in top)
    if folded:
        parts.append(f"{folded} more")
    return ", ".join(parts)


def format_changes(changes: AggregatedChanges) -> str:
    """'2 added, 1 modified, 0 removed'."""
    return ", ".join(
        f"{len(group)} {label}"
        for label, group in (
            ("added", changes.added),
            ("modified", changes.modified),
            ("removed", changes.removed),
        )
    )


def format_status(status: WatcherStatus) -> str:
    state = "Active" if status.is_watching else status.state.value.capitalize()
    burst = "Yes (high activity detected)" if status.is_burst_mode else "No"
    lines = [
        f"Watcher Status for '{status.root_path}':",
        f"  Status: {state}",
        f"  Pending changes: {status.pending_changes}",
        f"  Burst mode: {burst}",
    ]
    if status.last_change_time is not None:
        lines.append(f"  Last change: {status.last_change_time.isoformat(timespec='seconds')}")
    if status.last_error:
        lines.append(f"  Error: {status.last_error}")
    return "\n".join(lines)
