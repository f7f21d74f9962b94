"""Song queue data models and payload parsing."""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Label for tracks that were queued by the playlist rather than a viewer
PLAYLIST_USER = "playlist"


class QueueEntry(BaseModel):
    """A single song in the request queue. Position 0 is the song playing now."""
    id: str
    title: str
    submitted_by: str
    duration_seconds: int
    position: int

    model_config = {"frozen": True}

    @property
    def duration_label(self) -> str:
        minutes, seconds = divmod(max(self.duration_seconds, 0), 60)
        return f"{minutes}:{seconds:02d}"

    @property
    def is_current(self) -> bool:
        return self.position == 0


class Queue(BaseModel):
    """Immutable snapshot of the remote queue, sorted by position."""
    entries: tuple[QueueEntry, ...] = ()
    requests_enabled: bool | None = None

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current(self) -> QueueEntry | None:
        if self.entries and self.entries[0].is_current:
            return self.entries[0]
        return None

    @property
    def upcoming(self) -> tuple[QueueEntry, ...]:
        return tuple(e for e in self.entries if not e.is_current)

    def to_rows(self) -> list[dict[str, Any]]:
        """Flatten entries for table/json/csv output."""
        return [
            {
                "position": e.position,
                "id": e.id,
                "title": e.title,
                "duration": e.duration_label,
                "user": e.submitted_by,
            }
            for e in self.entries
        ]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return 0


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _parse_song(song: dict[str, Any], position: int, fallback_user: str = "") -> QueueEntry:
    track = _as_dict(song.get("track"))
    user = song.get("user")
    if isinstance(user, dict):
        submitted_by = _as_str(user.get("displayName"))
    else:
        submitted_by = fallback_user
    return QueueEntry(
        id=_as_str(song.get("_id")),
        title=_as_str(track.get("title")),
        submitted_by=submitted_by,
        duration_seconds=_as_int(track.get("duration")),
        position=position,
    )


def parse_queue(payload: Any) -> Queue:
    """Build a Queue snapshot from the ``/1/song_requests/queue`` payload.

    The current song becomes position 0. Missing or mistyped fields degrade
    to empty strings / zero instead of failing; a payload that is not an
    object yields an empty queue.
    """
    if not isinstance(payload, dict):
        logger.warning("Song queue payload is not an object; treating as empty.")
        return Queue()

    requests_enabled = payload.get("_requestsEnabled")
    if not isinstance(requests_enabled, bool):
        requests_enabled = None

    entries: list[QueueEntry] = []

    current = payload.get("_currentSong")
    if isinstance(current, dict):
        entries.append(_parse_song(current, 0, fallback_user=PLAYLIST_USER))

    queue = payload.get("queue")
    if isinstance(queue, list):
        for index, song in enumerate(queue, start=1):
            if not isinstance(song, dict):
                continue
            position = _as_int(song.get("_position"))
            if position < 1:
                # 0 belongs to the current song
                position = index
            entries.append(_parse_song(song, position))

    # The API does not promise ordering; sort is stable so ties keep payload order
    entries.sort(key=lambda e: e.position)
    return Queue(entries=tuple(entries), requests_enabled=requests_enabled)


def parse_display_name(payload: Any) -> str:
    """Extract ``user.displayName`` from the ``/1/me`` payload, or ""."""
    user = _as_dict(payload).get("user")
    return _as_str(_as_dict(user).get("displayName"))
