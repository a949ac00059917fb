"""codewatch watch command - watch roots and print change batches."""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from codewatch.config.models import CodeWatchConfig
from codewatch.core.errors import CodeWatchError
from codewatch.core.formatting import (
    format_changes,
    format_status,
    preview_paths,
    summarize_changes_by_type,
)
from codewatch.watch.manager import ManagerEvent, WatcherManager
from codewatch.watch.signals import ManagerSignal


def _event_line(event: ManagerEvent) -> str | None:
    """Human-readable line for a non-batch signal, or None to stay quiet."""
    root = escape(str(event.root_path))
    if event.signal is ManagerSignal.WATCHER_READY:
        return f"[green]✓[/green] watching {root}"
    if event.signal is ManagerSignal.BURST_MODE_START:
        return f"[yellow]![/yellow] {root}: high activity, batching more slowly"
    if event.signal is ManagerSignal.BURST_MODE_END:
        return f"[green]✓[/green] {root}: activity back to normal"
    if event.signal is ManagerSignal.WATCHER_ERROR and event.error is not None:
        return f"[red]✗[/red] {root}: {escape(event.error.message)}"
    if event.signal is ManagerSignal.RECOVERY_SUCCESS:
        return f"[green]✓[/green] {root}: watcher recovered"
    if event.signal is ManagerSignal.RECOVERY_FAILED and event.error is not None:
        return f"[red]✗[/red] {root}: {escape(event.error.message)}"
    if event.signal is ManagerSignal.HANDLER_ERROR and event.error is not None:
        return f"[red]✗[/red] {root}: {escape(event.error.message)}"
    return None


async def run_watch(
    manager: WatcherManager,
    roots: list[Path],
    *,
    as_json: bool,
    console: Console,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Watch roots until stop_event is set (or SIGINT/SIGTERM)."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)

    def print_batch(event: ManagerEvent) -> None:
        changes = event.changes
        if changes is None:
            return
        if as_json:
            click.echo(json.dumps({"root": str(event.root_path), **changes.to_dict()}))
            return
        paths = changes.all_paths()
        console.print(
            f"[cyan]{escape(str(event.root_path))}[/cyan] {format_changes(changes)} "
            f"({escape(summarize_changes_by_type(paths))}): {escape(preview_paths(paths))}",
            highlight=False,
        )

    def print_event(event: ManagerEvent) -> None:
        line = _event_line(event)
        if line is not None and not as_json:
            console.print(line, highlight=False)

    manager.on(ManagerSignal.CHANGES, print_batch)
    for sig_name in (
        ManagerSignal.WATCHER_READY,
        ManagerSignal.BURST_MODE_START,
        ManagerSignal.BURST_MODE_END,
        ManagerSignal.WATCHER_ERROR,
        ManagerSignal.RECOVERY_SUCCESS,
        ManagerSignal.RECOVERY_FAILED,
        ManagerSignal.HANDLER_ERROR,
    ):
        manager.on(sig_name, print_event)

    try:
        for root in roots:
            await manager.start_watching(root)
        await stop_event.wait()
        if not as_json:
            for status in manager.get_all_watcher_statuses().values():
                console.print(format_status(status), markup=False, highlight=False)
    finally:
        await manager.stop_all()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--debounce-ms", type=click.IntRange(min=1), help="Quiet period before a batch")
@click.option(
    "--burst-debounce-ms", type=click.IntRange(min=1), help="Quiet period during burst mode"
)
@click.option("--max-watchers", type=click.IntRange(min=1), help="Maximum watched roots")
@click.option("--json", "as_json", is_flag=True, help="Print batches as JSON lines")
@click.pass_context
def watch_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    debounce_ms: int | None,
    burst_debounce_ms: int | None,
    max_watchers: int | None,
    as_json: bool,
) -> None:
    """Watch one or more directories and print debounced change batches.

    Runs until interrupted (Ctrl-C).
    """
    config: CodeWatchConfig = ctx.obj["config"]

    # Command-line values form the manager-level default layer
    overrides = config.watcher.model_dump(exclude_unset=True)
    if debounce_ms is not None:
        overrides["debounce_ms"] = debounce_ms
    if burst_debounce_ms is not None:
        overrides["burst_debounce_ms"] = burst_debounce_ms

    manager = WatcherManager(
        max_watchers=max_watchers or config.manager.max_watchers,
        default_config=overrides,
        recovery_cooldown_sec=config.manager.recovery_cooldown_sec,
    )
    console = Console(stderr=False)

    try:
        asyncio.run(run_watch(manager, list(paths), as_json=as_json, console=console))
    except CodeWatchError as e:
        raise click.ClickException(e.message) from e
