"""Repeating timers and the millisecond clock used by the scheduler."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


class Ticker(Protocol):
    """A repeating timer owned by one playback session."""

    def start(self) -> None:
        """Begin calling the callback every interval."""
        ...

    def cancel(self) -> None:
        """Stop calling the callback. Safe to call more than once."""
        ...


TickerFactory = Callable[[float, Callable[[], None]], Ticker]


class ThreadTicker:
    """
    Calls a function every `interval_s` seconds on a daemon thread.

    Ticks are scheduled against the start time, so a slow callback does not
    accumulate drift; if it overruns, the next tick fires immediately instead
    of bursting to catch up.
    """

    def __init__(self, interval_s: float, callback: Callable[[], None], name: str = "playback-ticker"):
        self._interval = interval_s
        self._callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        # No join: the callback may be waiting on a lock the canceller holds
        self._cancelled.set()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._cancelled.is_set()

    def _run(self) -> None:
        next_at = time.monotonic() + self._interval
        while not self._cancelled.wait(max(0.0, next_at - time.monotonic())):
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Error in ticker callback: {e}", exc_info=True)
            next_at = max(next_at + self._interval, time.monotonic())
