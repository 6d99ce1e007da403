# cart_recovery/services/scheduler.py
import threading
import time
from typing import Callable

from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Runs a callable on a background thread at a fixed cadence.

    Runs never overlap. When a run takes longer than the interval the next one
    starts right after it, and missed ticks are dropped rather than replayed.
    stop() lets a run that is already in progress finish before returning.
    """

    def __init__(self, name: str):
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval: float, fn: Callable[[], object], run_immediately: bool = True) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if self.running:
            raise RuntimeError(f"{self.name} is already running")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(interval, fn, run_immediately),
            name=self.name,
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Started {self.name}, interval={interval}s")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"{self.name} did not stop within {timeout}s")
                return
        self._thread = None
        logger.info(f"{self.name} stopped")

    def _loop(self, interval: float, fn: Callable[[], object], run_immediately: bool) -> None:
        next_run = time.monotonic() if run_immediately else time.monotonic() + interval

        while not self._stop_event.is_set():
            delay = next_run - time.monotonic()
            if delay > 0 and self._stop_event.wait(delay):
                break

            self._invoke(fn)

            next_run += interval
            now = time.monotonic()
            if next_run < now:
                next_run = now

    def _invoke(self, fn: Callable[[], object]) -> None:
        try:
            fn()
        except Exception:
            logger.exception(f"{self.name} run failed")
