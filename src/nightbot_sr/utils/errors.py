"""Error taxonomy and structured error output for agent-friendly CLI use."""

from __future__ import annotations

import json
import sys
from enum import Enum

from rich.console import Console

console = Console(stderr=True)


class ApiErrorKind(str, Enum):
    NO_TOKEN = "NO_TOKEN"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    REMOTE_REJECTED = "REMOTE_REJECTED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"
    AUTHORIZATION_EXPIRED = "AUTHORIZATION_EXPIRED"


class NightbotError(RuntimeError):
    """An operation failed; ``kind`` says how, ``status_code`` is set for REMOTE_REJECTED."""

    def __init__(self, kind: ApiErrorKind, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        """Only remote rejections carry detail worth showing; the rest are generic."""
        if self.kind == ApiErrorKind.REMOTE_REJECTED:
            return str(self)
        if self.kind == ApiErrorKind.NO_TOKEN:
            return "Not connected to Nightbot"
        return "Request to Nightbot failed"


# Actionable hints keyed by error substring
_ERROR_HINTS: list[tuple[str, str]] = [
    ("NO_TOKEN", "Not connected — run `nightbot-sr auth login`"),
    ("not connected", "Not connected — run `nightbot-sr auth login`"),
    ("401", "Token may be expired or revoked — run `nightbot-sr auth login`"),
    ("unauthorized", "Token may be expired or revoked — run `nightbot-sr auth login`"),
    ("access_denied", "Authorization was denied in the browser — run `nightbot-sr auth login` again"),
    ("expired", "The authorization window closed — run `nightbot-sr auth login` again"),
    ("client id", "Set NIGHTBOT_CLIENT_ID in your .env file"),
    ("429", "Rate limited — wait a moment and retry"),
    ("rate limit", "Rate limited — wait a moment and retry"),
    ("timeout", "Request timed out — try again or check network connectivity"),
    ("connection", "Connection error — check network connectivity"),
    ("404", "The song is no longer in the queue — refresh with `nightbot-sr queue show`"),
]


def _get_hint(error_message: str) -> str | None:
    """Match an error message to an actionable hint."""
    lower = error_message.lower()
    for pattern, hint in _ERROR_HINTS:
        if pattern.lower() in lower:
            return hint
    return None


def _get_code(error: Exception, message: str) -> str:
    if isinstance(error, NightbotError):
        return error.kind.value
    lower = message.lower()
    if "401" in message or "unauthorized" in lower:
        return "AUTH_ERROR"
    if "timeout" in lower:
        return "TIMEOUT"
    if "connection" in lower:
        return "CONNECTION_ERROR"
    if isinstance(error, ValueError):
        return "CONFIG_ERROR"
    return "RUNTIME_ERROR"


def handle_error(error: Exception) -> None:
    """Handle an error with structured output to stdout and human-readable output to stderr.

    Outputs a JSON error object to stdout for agent consumption:
    {"error": true, "code": "REMOTE_REJECTED", "message": "...", "hint": "..."}

    Also prints a human-readable error to stderr.
    """
    message = str(error)
    code = _get_code(error, message)
    hint = _get_hint(f"{code} {message}")

    error_obj: dict[str, object] = {
        "error": True,
        "code": code,
        "message": message,
    }
    if isinstance(error, NightbotError) and error.status_code is not None:
        error_obj["status"] = error.status_code
    if hint:
        error_obj["hint"] = hint

    json.dump(error_obj, sys.stdout)
    sys.stdout.write("\n")

    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[dim]Hint: {hint}[/dim]")
