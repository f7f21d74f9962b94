"""Song request queue operations.

Every public method runs on the worker pool and returns a Future; results are
also published on the event bus. Failures are logged and degrade to empty /
False results instead of raising.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, TypeVar

from nightbot_sr.client import ApiTransport, RequestOutcome, classify
from nightbot_sr.models.queue import Queue, parse_display_name, parse_queue
from nightbot_sr.utils.errors import ApiErrorKind, NightbotError
from nightbot_sr.utils.events import (
    QUEUE_FETCHED,
    REQUESTS_ENABLED,
    SONG_ADDED,
    USER_INFO_FETCHED,
    EventBus,
)
from nightbot_sr.utils.workers import WorkerPool, completed

logger = logging.getLogger(__name__)

T = TypeVar("T")

ME_PATH = "/1/me"
SONG_REQUESTS_PATH = "/1/song_requests"
QUEUE_PATH = "/1/song_requests/queue"


def _decode(outcome: RequestOutcome) -> Any:
    try:
        return outcome.json()
    except ValueError as e:
        raise NightbotError(ApiErrorKind.MALFORMED_RESPONSE, f"Response is not valid JSON: {e}")


def _remote_message(outcome: RequestOutcome) -> str:
    """The ``message`` Nightbot sends with a rejection, if any."""
    try:
        data = outcome.json()
    except ValueError:
        return ""
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return ""


class QueueClient:
    """Typed operations over ``/1/song_requests``."""

    def __init__(self, transport: ApiTransport, pool: WorkerPool, bus: EventBus) -> None:
        self._transport = transport
        self._pool = pool
        self._bus = bus
        self._fetch_lock = threading.Lock()
        self._queued_fetch: Future[Queue] | None = None

    # ── queue ─────────────────────────────────────────────────────────

    def fetch_queue(self) -> Future[Queue]:
        """Fetch the queue in the background.

        While a fetch is waiting for a worker, further calls share it instead
        of queueing another request. A command submitted in between ends the
        sharing, so a refresh after a command always reads its effect.
        """
        with self._fetch_lock:
            queued = self._queued_fetch
            if queued is not None and not (queued.running() or queued.done()):
                return queued
            future = self._pool.submit(self._run_fetch_queue)
            self._queued_fetch = future
            return future

    def _run_fetch_queue(self) -> Queue:
        queue = self.load_queue()
        self._bus.publish(QUEUE_FETCHED, queue)
        return queue

    def load_queue(self) -> Queue:
        """Fetch and parse the queue on the calling thread. Never raises."""
        outcome = self._transport.get(QUEUE_PATH)
        kind = classify(outcome)
        if kind is not None:
            logger.warning(f"Song queue fetch failed with HTTP status {outcome.status_code}.")
            return Queue()

        try:
            queue = parse_queue(_decode(outcome))
        except (NightbotError, ValueError, OverflowError) as e:
            logger.warning(f"Failed to parse song queue response: {e}")
            return Queue()

        if queue.requests_enabled is not None:
            self._bus.publish(REQUESTS_ENABLED, queue.requests_enabled)
        logger.info(f"Fetched song queue with {len(queue)} entries.")
        return queue

    # ── player controls ───────────────────────────────────────────────

    def control_play(self) -> Future[bool]:
        return self._submit_command(self._send_command, "PLAY", "POST", f"{QUEUE_PATH}/play")

    def control_pause(self) -> Future[bool]:
        return self._submit_command(self._send_command, "PAUSE", "POST", f"{QUEUE_PATH}/pause")

    def control_skip(self) -> Future[bool]:
        return self._submit_command(self._send_command, "SKIP", "POST", f"{QUEUE_PATH}/skip")

    def delete_song(self, song_id: str) -> Future[bool]:
        if not song_id:
            return completed(False)
        logger.info(f"Deleting song with ID: {song_id}")
        return self._submit_command(self._send_command, "DELETE", "DELETE", f"{QUEUE_PATH}/{song_id}")

    def promote_song(self, song_id: str) -> Future[bool]:
        if not song_id:
            return completed(False)
        logger.info(f"Promoting song with ID: {song_id}")
        return self._submit_command(self._send_command, "PROMOTE", "POST", f"{QUEUE_PATH}/{song_id}/promote")

    def set_requests_enabled(self, enabled: bool) -> Future[bool]:
        logger.info(f"Setting song requests to {'enabled' if enabled else 'disabled'}...")
        return self._submit_command(
            self._send_command, "SET ENABLED", "PUT", SONG_REQUESTS_PATH, {"enabled": enabled}
        )

    def _submit_command(self, fn: Callable[..., T], *args: Any) -> Future[T]:
        # Fetches queued from here on must run after the command, not before it
        with self._fetch_lock:
            self._queued_fetch = None
            return self._pool.submit(fn, *args)

    def _send_command(
        self, name: str, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> bool:
        logger.info(f"Sending {name} command...")
        outcome = self._transport.execute(method, path, json_body=json_body)
        if outcome.ok:
            logger.info(f"{name} command successful.")
            return True
        logger.warning(f"{name} command failed with HTTP status {outcome.status_code}.")
        return False

    # ── adding songs ──────────────────────────────────────────────────

    def add_song(self, query: str) -> Future[tuple[bool, str]]:
        """Request a song by search text or URL. The message explains a failure."""
        query = query.strip()
        if not query:
            result = (False, "Enter a song title or link.")
            self._bus.publish(SONG_ADDED, *result)
            return completed(result)
        return self._submit_command(self._run_add_song, query)

    def _run_add_song(self, query: str) -> tuple[bool, str]:
        logger.info(f"Requesting song: {query}")
        outcome = self._transport.post(QUEUE_PATH, form_body={"q": query})
        kind = classify(outcome)

        if kind is None:
            result = (True, "")
        elif kind == ApiErrorKind.REMOTE_REJECTED:
            message = _remote_message(outcome) or f"Nightbot rejected the request (HTTP {outcome.status_code})."
            logger.warning(f"Song request failed: {message}")
            result = (False, message)
        else:
            logger.warning("Song request failed: no response from Nightbot.")
            result = (False, "Could not reach Nightbot.")

        self._bus.publish(SONG_ADDED, *result)
        return result

    # ── user ──────────────────────────────────────────────────────────

    def fetch_user_info(self) -> Future[str]:
        return self._pool.submit(self._run_fetch_user_info)

    def _run_fetch_user_info(self) -> str:
        logger.info("Fetching user info...")
        outcome = self._transport.get(ME_PATH)
        name = ""
        if outcome.ok:
            try:
                name = parse_display_name(_decode(outcome))
            except NightbotError as e:
                logger.error(f"Failed to parse user info response: {e}")
            else:
                logger.info(f"Fetched user: {name}")
        else:
            logger.warning(f"User info fetch failed with HTTP status {outcome.status_code}.")

        self._bus.publish(USER_INFO_FETCHED, name)
        return name
