"""Background execution: a bounded worker pool and cancellable timers."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkerPool:
    """Fixed-size thread pool for network-bound work.

    Submissions queue FIFO without a bound; callers that may be triggered
    repeatedly (queue fetches) coalesce on their side.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="nightbot-worker"
        )

    def submit(self, fn: Callable[..., T], *args: Any) -> Future[T]:
        return self._executor.submit(fn, *args)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)


def completed(value: T) -> Future[T]:
    """A future that is already resolved with *value*."""
    future: Future[T] = Future()
    future.set_result(value)
    return future


class RepeatingTask:
    """Runs a callable every *interval* seconds until cancelled."""

    def __init__(self, interval: float, fn: Callable[[], Any]) -> None:
        self.interval = interval
        self._fn = fn
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="nightbot-repeat")

    def start(self) -> "RepeatingTask":
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._fn()
            except Exception:
                logger.exception("Repeating task failed")

    def cancel(self) -> None:
        self._stop.set()

    @property
    def active(self) -> bool:
        return not self._stop.is_set() and self._thread.is_alive()


class Scheduler:
    """``call_later`` and ``every`` on daemon threads, all cancellable at shutdown."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()
        self._repeating: set[RepeatingTask] = set()

    def call_later(self, delay: float, fn: Callable[[], Any]) -> threading.Timer:
        """Run *fn* once after *delay* seconds."""

        def fire() -> None:
            with self._lock:
                self._timers.discard(timer)
            try:
                fn()
            except Exception:
                logger.exception("Scheduled task failed")

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()
        return timer

    def every(self, interval: float, fn: Callable[[], Any]) -> RepeatingTask:
        """Run *fn* every *interval* seconds until the returned task is cancelled."""
        task = RepeatingTask(interval, fn)
        with self._lock:
            self._repeating = {t for t in self._repeating if t.active}
            self._repeating.add(task)
        return task.start()

    def shutdown(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, set()
            repeating, self._repeating = self._repeating, set()
        for timer in timers:
            timer.cancel()
        for task in repeating:
            task.cancel()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)
