"""Nightbot song request CLI — entry point.

Operator console for a Nightbot song request queue: connect with the device
flow, watch the queue and control playback.
"""

from __future__ import annotations

import logging

import typer

from nightbot_sr.commands.auth_cmd import app as auth_app
from nightbot_sr.commands.profile_cmd import me
from nightbot_sr.commands.queue_cmd import app as queue_app
from nightbot_sr.commands.settings_cmd import app as settings_app

app = typer.Typer(
    name="nightbot-sr",
    help="Control a Nightbot song request queue from the terminal.",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(auth_app, name="auth")
app.add_typer(queue_app, name="queue")
app.add_typer(settings_app, name="settings")
app.command("me")(me)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Nightbot song requests — connect, view the queue, control playback."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


if __name__ == "__main__":
    app()
