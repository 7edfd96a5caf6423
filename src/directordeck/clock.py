"""Pausable elapsed-time clock with an optional periodic tick."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from directordeck.constants import DEFAULT_TICK_INTERVAL_MS

logger = logging.getLogger(__name__)


class Clock:
    """Tracks elapsed time across start/pause/resume cycles.

    Elapsed time is the sum of the active intervals only; time spent paused
    is excluded. The value is computed from ``time_source`` on every read, so
    callers always see the exact elapsed time rather than the last tick.

    When ``on_tick`` is given, a daemon thread calls it with the current
    elapsed time every ``interval`` seconds while the clock is running.
    """

    def __init__(
        self,
        interval: float = DEFAULT_TICK_INTERVAL_MS / 1000,
        time_source: Callable[[], float] = time.monotonic,
        on_tick: Optional[Callable[[float], None]] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._time = time_source
        self.on_tick = on_tick
        self._accumulated = 0.0
        self._segment_start: float | None = None
        self._lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._segment_start is not None

    @property
    def elapsed(self) -> float:
        with self._lock:
            return self._elapsed_locked()

    def _elapsed_locked(self) -> float:
        if self._segment_start is None:
            return self._accumulated
        # A time source that steps backwards never makes elapsed time shrink
        return self._accumulated + max(0.0, self._time() - self._segment_start)

    def start(self) -> None:
        """Start from zero."""
        self.reset()
        self.resume()

    def resume(self) -> None:
        """Continue counting on top of the accumulated total."""
        with self._lock:
            if self._segment_start is not None:
                return
            self._segment_start = self._time()
        self._start_ticker()

    def pause(self) -> float:
        """Freeze the accumulated total and return it."""
        with self._lock:
            if self._segment_start is not None:
                self._accumulated = self._elapsed_locked()
                self._segment_start = None
            total = self._accumulated
        self._stop_ticker()
        return total

    def stop(self) -> float:
        return self.pause()

    def reset(self) -> None:
        self._stop_ticker()
        with self._lock:
            self._accumulated = 0.0
            self._segment_start = None

    def _start_ticker(self) -> None:
        if self.on_tick is None or self._thread is not None:
            return
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._tick_loop, args=(stop_event,), name="directordeck-clock", daemon=True
        )
        self._thread.start()

    def _stop_ticker(self) -> None:
        thread, stop_event = self._thread, self._stop_event
        self._thread = None
        self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _tick_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            callback = self.on_tick
            if callback is None:
                continue
            try:
                callback(self.elapsed)
            except Exception:
                logger.exception("Clock tick listener failed; stopping ticks")
                return
