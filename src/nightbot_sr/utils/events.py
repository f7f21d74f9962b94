"""Publish/subscribe channels for session and queue notifications."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Event kinds
DEVICE_CODE = "device_code"
AUTH_COUNTDOWN = "auth_countdown"
AUTH_FINISHED = "auth_finished"
SIGNED_OUT = "signed_out"
UNAUTHORIZED = "unauthorized"
QUEUE_FETCHED = "queue_fetched"
USER_INFO_FETCHED = "user_info_fetched"
REQUESTS_ENABLED = "requests_enabled"
SONG_ADDED = "song_added"

Handler = Callable[..., Any]


class EventBus:
    """One subscriber list per event kind.

    Handlers run synchronously on the publishing thread, which is usually a
    worker or timer thread. A handler that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, kind: str, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *kind*. Returns a callable that unsubscribes it."""
        with self._lock:
            self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(kind, handler)

        return unsubscribe

    def unsubscribe(self, kind: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(kind, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, kind: str, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(kind, []))

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Handler for '{kind}' event failed")

    def subscriber_count(self, kind: str) -> int:
        with self._lock:
            return len(self._handlers.get(kind, []))
