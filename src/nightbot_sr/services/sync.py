"""Keeps the displayed queue in step with the remote queue.

Every mutating action is followed by an immediate re-fetch and a delayed one,
because Nightbot sometimes applies a command before it answers and sometimes
after. Whichever snapshot arrives last is the one shown; there is no merging.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future

from nightbot_sr.auth import AuthSession
from nightbot_sr.config import Config
from nightbot_sr.models.queue import Queue
from nightbot_sr.services.queue import QueueClient
from nightbot_sr.services.settings_store import SettingsStore
from nightbot_sr.utils.events import (
    AUTH_FINISHED,
    QUEUE_FETCHED,
    REQUESTS_ENABLED,
    SIGNED_OUT,
    USER_INFO_FETCHED,
    EventBus,
)
from nightbot_sr.utils.workers import RepeatingTask, Scheduler, completed

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Sequences user commands with the queue refreshes that follow them."""

    def __init__(
        self,
        config: Config,
        queue_client: QueueClient,
        auth: AuthSession,
        settings_store: SettingsStore,
        scheduler: Scheduler,
        bus: EventBus,
    ) -> None:
        self._queue_client = queue_client
        self._auth = auth
        self._settings_store = settings_store
        self._scheduler = scheduler
        self._bus = bus
        self._settle_delay = config.settle_delay
        self._toggle_settle_delay = config.toggle_settle_delay

        self._lock = threading.Lock()
        self._queue = Queue()
        self._requests_enabled: bool | None = None
        self._auto_refresh: RepeatingTask | None = None

        self._unsubscribers = [
            bus.subscribe(QUEUE_FETCHED, self._on_queue_fetched),
            bus.subscribe(REQUESTS_ENABLED, self._on_requests_enabled),
            bus.subscribe(AUTH_FINISHED, self._on_auth_finished),
            bus.subscribe(USER_INFO_FETCHED, self._on_user_info_fetched),
            bus.subscribe(SIGNED_OUT, self._on_signed_out),
        ]

    # ── displayed state ───────────────────────────────────────────────

    @property
    def current_queue(self) -> Queue:
        with self._lock:
            return self._queue

    @property
    def requests_enabled(self) -> bool | None:
        with self._lock:
            return self._requests_enabled

    def _on_queue_fetched(self, queue: Queue) -> None:
        with self._lock:
            self._queue = queue

    def _on_requests_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._requests_enabled = enabled

    # ── actions ───────────────────────────────────────────────────────

    def refresh(self) -> Future[Queue]:
        return self._queue_client.fetch_queue()

    def play(self) -> Future[bool]:
        return self._run(self._queue_client.control_play())

    def pause(self) -> Future[bool]:
        return self._run(self._queue_client.control_pause())

    def skip(self) -> Future[bool]:
        return self._run(self._queue_client.control_skip())

    def delete(self, song_id: str) -> Future[bool]:
        if not song_id:
            return completed(False)
        return self._run(self._queue_client.delete_song(song_id))

    def promote(self, song_id: str) -> Future[bool]:
        if not song_id:
            return completed(False)
        return self._run(self._queue_client.promote_song(song_id))

    def set_requests_enabled(self, enabled: bool) -> Future[bool]:
        command = self._queue_client.set_requests_enabled(enabled)
        # Show the new state before Nightbot confirms it
        self._bus.publish(REQUESTS_ENABLED, enabled)
        return self._run(command, self._toggle_settle_delay)

    def add_song(self, query: str) -> Future[tuple[bool, str]]:
        future = self._queue_client.add_song(query)
        future.add_done_callback(self._after_add)
        return future

    def _after_add(self, future: Future[tuple[bool, str]]) -> None:
        if future.result()[0]:
            self._schedule_refetch(self._settle_delay)

    def _run(self, command: Future[bool], delay: float | None = None) -> Future[bool]:
        self._schedule_refetch(self._settle_delay if delay is None else delay)
        self.refresh()
        return command

    def _schedule_refetch(self, delay: float) -> None:
        self._scheduler.call_later(delay, self.refresh)

    # ── auto refresh ──────────────────────────────────────────────────

    def update_auto_refresh(self) -> bool:
        """Start, restart or stop the periodic refresh from the stored settings.

        Returns True when auto refresh is running afterwards.
        """
        self.stop_auto_refresh()

        if not self._auth.is_authenticated():
            logger.info("Not authenticated. Auto-refresh stopped.")
            with self._lock:
                self._requests_enabled = False
            return False

        if not self._settings_store.get_auto_refresh_enabled():
            logger.info("Auto-refresh disabled.")
            return False

        interval = self._settings_store.get_auto_refresh_interval()
        if interval <= 0:
            logger.warning(f"Auto-refresh is enabled but interval is invalid ({interval} seconds). Not starting.")
            return False

        with self._lock:
            self._auto_refresh = self._scheduler.every(interval, self.refresh)
        logger.info(f"Auto-refresh started with {interval}s interval.")
        return True

    def stop_auto_refresh(self) -> None:
        with self._lock:
            task, self._auto_refresh = self._auto_refresh, None
        if task is not None:
            task.cancel()

    @property
    def auto_refresh_active(self) -> bool:
        with self._lock:
            return self._auto_refresh is not None and self._auto_refresh.active

    # ── session events ────────────────────────────────────────────────

    def _on_auth_finished(self, success: bool) -> None:
        if success:
            self._queue_client.fetch_user_info()
        self.update_auto_refresh()

    def _on_user_info_fetched(self, name: str) -> None:
        if not name:
            return
        self._settings_store.set_user_name(name)
        self.refresh()

    def _on_signed_out(self) -> None:
        self.stop_auto_refresh()
        with self._lock:
            self._requests_enabled = False
        self._bus.publish(QUEUE_FETCHED, Queue())

    def close(self) -> None:
        self.stop_auto_refresh()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
