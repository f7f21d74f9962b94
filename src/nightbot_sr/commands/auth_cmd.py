"""CLI commands for connecting to Nightbot."""

from __future__ import annotations

import threading
from typing import Annotated

import typer
from rich.console import Console

from nightbot_sr.config import get_config
from nightbot_sr.context import build_context
from nightbot_sr.models.auth import PendingAuthorization
from nightbot_sr.utils.errors import handle_error
from nightbot_sr.utils.events import AUTH_COUNTDOWN, DEVICE_CODE, USER_INFO_FETCHED
from nightbot_sr.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="auth", help="Connect to and disconnect from Nightbot.")

USER_INFO_TIMEOUT = 15.0


def _show_device_code(pending: PendingAuthorization) -> None:
    console.print(
        f"Open [bold]{pending.verification_uri_complete or pending.verification_uri}[/bold] "
        f"and enter the code [bold cyan]{pending.user_code}[/bold cyan]."
    )


@app.command()
def login(
    timeout: Annotated[float | None, typer.Option("--timeout", "-t", help="Give up after this many seconds")] = None,
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Connect with the device authorization flow."""
    ctx = build_context(get_config())

    try:
        if ctx.auth.is_authenticated():
            user_name = ctx.settings_store.get_user_name()
            console.print(f"Already connected{f' as [bold]{user_name}[/bold]' if user_name else ''}.")
            return

        user_info = threading.Event()
        fetched: dict[str, str] = {}

        def on_user_info(name: str) -> None:
            fetched["user"] = name
            user_info.set()

        ctx.bus.subscribe(DEVICE_CODE, _show_device_code)
        ctx.bus.subscribe(USER_INFO_FETCHED, on_user_info)

        with console.status("Requesting device code...") as status:
            ctx.bus.subscribe(
                AUTH_COUNTDOWN,
                lambda remaining: status.update(f"Waiting for approval... ({remaining}s)"),
            )
            ctx.auth.authenticate()
            authenticated = ctx.auth.wait(timeout)

        if not authenticated:
            # Stops the loop when --timeout ran out first
            ctx.auth.clear_tokens()
            console.print("[red]Authentication failed.[/red]")
            raise typer.Exit(1)

        user_info.wait(USER_INFO_TIMEOUT)
        result = {"status": "authenticated", "user": fetched.get("user", "")}
        print_output(result, output, title="Authentication")
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        ctx.close()


@app.command()
def logout() -> None:
    """Forget the stored token."""
    ctx = build_context(get_config())
    try:
        ctx.auth.clear_tokens()
        console.print("Disconnected from Nightbot.")
    finally:
        ctx.close()


@app.command()
def status(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show connection status."""
    ctx = build_context(get_config())
    try:
        token_status = ctx.auth.get_status()
        result = {
            "state": token_status.state.value,
            "has_token": token_status.has_token,
            "user": ctx.settings_store.get_user_name() or "N/A",
            "expires_at": str(token_status.expires_at) if token_status.expires_at else "N/A",
            "seconds_remaining": token_status.seconds_remaining or 0,
        }
        print_output(result, output, title="Nightbot Connection")
    finally:
        ctx.close()
