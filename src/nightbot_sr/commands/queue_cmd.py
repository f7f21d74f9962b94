"""CLI commands for viewing and controlling the song request queue."""

from __future__ import annotations

import time
from concurrent.futures import Future
from typing import Annotated, Callable

import typer
from rich.console import Console
from rich.live import Live

from nightbot_sr.config import get_config
from nightbot_sr.context import NightbotContext, build_context
from nightbot_sr.models.queue import Queue
from nightbot_sr.utils.errors import ApiErrorKind, NightbotError, handle_error
from nightbot_sr.utils.events import QUEUE_FETCHED
from nightbot_sr.utils.output import OutputFormat, print_queue, render_queue_table

console = Console(stderr=True)
app = typer.Typer(name="queue", help="View and control the song request queue.")

COMMAND_TIMEOUT = 30.0


def _connected_context() -> NightbotContext:
    """Build the context, exiting with a structured error when not connected."""
    ctx = build_context(get_config())
    if not ctx.auth.is_authenticated():
        ctx.close()
        handle_error(NightbotError(ApiErrorKind.NO_TOKEN, "Not connected to Nightbot"))
        raise typer.Exit(1)
    return ctx


def _run_command(
    name: str,
    action: Callable[[NightbotContext], Future[bool]],
    show: bool,
    output: OutputFormat,
    toggle: bool = False,
) -> None:
    ctx = _connected_context()
    try:
        ok = action(ctx).result(timeout=COMMAND_TIMEOUT)
        if not ok:
            handle_error(RuntimeError(f"{name} command failed"))
            raise typer.Exit(1)
        console.print(f"[green]{name} command sent.[/green]")

        if show:
            # Give Nightbot the same settle time the delayed refresh uses
            time.sleep(ctx.config.toggle_settle_delay if toggle else ctx.config.settle_delay)
            print_queue(ctx.sync.refresh().result(timeout=COMMAND_TIMEOUT), output)
    finally:
        ctx.close()


ShowOption = Annotated[bool, typer.Option("--show/--no-show", help="Print the queue afterwards")]
OutputOption = Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")]


@app.command("show")
def show(output: OutputOption = OutputFormat.TABLE) -> None:
    """Show the current queue. Position 0 is the song playing now."""
    ctx = _connected_context()
    try:
        print_queue(ctx.sync.refresh().result(timeout=COMMAND_TIMEOUT), output)
    finally:
        ctx.close()


@app.command("play")
def play(show: ShowOption = True, output: OutputOption = OutputFormat.TABLE) -> None:
    """Resume playback."""
    _run_command("PLAY", lambda ctx: ctx.sync.play(), show, output)


@app.command("pause")
def pause(show: ShowOption = True, output: OutputOption = OutputFormat.TABLE) -> None:
    """Pause playback."""
    _run_command("PAUSE", lambda ctx: ctx.sync.pause(), show, output)


@app.command("skip")
def skip(show: ShowOption = True, output: OutputOption = OutputFormat.TABLE) -> None:
    """Skip the current song."""
    _run_command("SKIP", lambda ctx: ctx.sync.skip(), show, output)


@app.command("delete")
def delete(
    song_id: Annotated[str, typer.Argument(help="Queue entry ID (see `queue show`)")],
    show: ShowOption = True,
    output: OutputOption = OutputFormat.TABLE,
) -> None:
    """Remove a song from the queue."""
    _run_command("DELETE", lambda ctx: ctx.sync.delete(song_id), show, output)


@app.command("promote")
def promote(
    song_id: Annotated[str, typer.Argument(help="Queue entry ID (see `queue show`)")],
    show: ShowOption = True,
    output: OutputOption = OutputFormat.TABLE,
) -> None:
    """Move a song to the front of the queue."""
    _run_command("PROMOTE", lambda ctx: ctx.sync.promote(song_id), show, output)


@app.command("enable")
def enable(show: ShowOption = False, output: OutputOption = OutputFormat.TABLE) -> None:
    """Turn song requests on."""
    _run_command("ENABLE", lambda ctx: ctx.sync.set_requests_enabled(True), show, output, toggle=True)


@app.command("disable")
def disable(show: ShowOption = False, output: OutputOption = OutputFormat.TABLE) -> None:
    """Turn song requests off."""
    _run_command("DISABLE", lambda ctx: ctx.sync.set_requests_enabled(False), show, output, toggle=True)


@app.command("add")
def add(
    query: Annotated[str, typer.Argument(help="Song title, search text or link")],
) -> None:
    """Request a song."""
    ctx = _connected_context()
    try:
        ok, message = ctx.sync.add_song(query).result(timeout=COMMAND_TIMEOUT)
        if not ok:
            handle_error(NightbotError(ApiErrorKind.REMOTE_REJECTED, message))
            raise typer.Exit(1)
        console.print("[green]Song requested.[/green]")
    finally:
        ctx.close()


@app.command("watch")
def watch(
    interval: Annotated[
        int | None, typer.Option("--interval", "-i", help="Refresh every N seconds (default: stored setting)")
    ] = None,
) -> None:
    """Show the queue and keep it up to date until Ctrl-C."""
    ctx = _connected_context()
    task = None
    try:
        with Live(render_queue_table(Queue()), console=console, refresh_per_second=4) as live:
            ctx.bus.subscribe(QUEUE_FETCHED, lambda queue: live.update(render_queue_table(queue)))
            ctx.sync.refresh()

            if interval is not None and interval > 0:
                task = ctx.scheduler.every(interval, ctx.sync.refresh)
            elif not ctx.sync.update_auto_refresh():
                console.print("[dim]Auto-refresh is off; use --interval or `settings auto-refresh --enable`.[/dim]")

            try:
                while ctx.auth.is_authenticated():
                    time.sleep(0.5)
            except KeyboardInterrupt:
                pass
    finally:
        if task is not None:
            task.cancel()
        ctx.close()
