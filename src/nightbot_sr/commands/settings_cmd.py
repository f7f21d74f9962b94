"""CLI commands for stored operator settings."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from nightbot_sr.config import get_config
from nightbot_sr.services.settings_store import SettingsStore
from nightbot_sr.utils.errors import handle_error
from nightbot_sr.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="settings", help="Show and change stored settings.")


def _store() -> SettingsStore:
    return SettingsStore(get_config().settings.settings_file)


@app.command("show")
def show(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show stored settings (the token itself is never printed)."""
    stored = _store().load()
    result = {
        "auto_refresh_enabled": stored.auto_refresh_enabled,
        "auto_refresh_interval": stored.auto_refresh_interval,
        "user_name": stored.user_name or "N/A",
        "connected": bool(stored.access_token),
    }
    print_output(result, output, title="Settings")


@app.command("auto-refresh")
def auto_refresh(
    enable: Annotated[bool | None, typer.Option("--enable/--disable", help="Turn auto refresh on or off")] = None,
    interval: Annotated[int | None, typer.Option("--interval", "-i", help="Seconds between refreshes (5-300)")] = None,
) -> None:
    """Configure automatic queue refresh used by `queue watch`."""
    store = _store()
    try:
        if interval is not None:
            store.set_auto_refresh_interval(interval)
        if enable is not None:
            store.set_auto_refresh_enabled(enable)
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)

    stored = store.load()
    state = "on" if stored.auto_refresh_enabled else "off"
    console.print(f"Auto-refresh is [bold]{state}[/bold] (every {stored.auto_refresh_interval}s).")
