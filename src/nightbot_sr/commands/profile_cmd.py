"""CLI command for the connected Nightbot account."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from nightbot_sr.config import get_config
from nightbot_sr.commands.queue_cmd import COMMAND_TIMEOUT
from nightbot_sr.context import build_context
from nightbot_sr.utils.errors import ApiErrorKind, NightbotError, handle_error
from nightbot_sr.utils.output import OutputFormat, print_output

console = Console(stderr=True)


def me(
    output: Annotated[OutputFormat, typer.Option("--output", "-o", help="Output format")] = OutputFormat.TABLE,
) -> None:
    """Show the connected account's display name."""
    ctx = build_context(get_config())
    try:
        if not ctx.auth.is_authenticated():
            handle_error(NightbotError(ApiErrorKind.NO_TOKEN, "Not connected to Nightbot"))
            raise typer.Exit(1)

        name = ctx.queue.fetch_user_info().result(timeout=COMMAND_TIMEOUT)
        if not name:
            console.print("[dim]Could not fetch the account name.[/dim]")
            raise typer.Exit(1)

        print_output({"user": name}, output, title="Nightbot Account")
    finally:
        ctx.close()
