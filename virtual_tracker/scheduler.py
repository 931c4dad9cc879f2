#
# scheduler.py: periodic callback scheduling
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements thread-based repeating timer
#

import threading, time
from typing import Callable, Optional
from . import logger_get


class RepeatingTimer:
    """Invokes a callback every `interval` seconds on a dedicated thread.

    Ticks never overlap: the next tick is scheduled only after the previous one returned. If the
    callback raises, the error is logged, kept in `error`, and the timer stops: an exception is
    fatal to the loop which owns the callback.
    """

    def __init__(self, callback: Callable[[], None], interval: float, name: str = ""):
        """
        Constructor.

        Args:
            callback (Callable): Function to call on every tick.
            interval (float): Tick interval in seconds, must be positive.
            name (str, optional): Thread name.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._name = name or f"RepeatingTimer-{id(self):x}"
        self.ticks = 0
        self.error: Optional[BaseException] = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "RepeatingTimer":
        """Start ticking; no-op if already running."""
        if not self.running:
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None):
        """Stop ticking and wait for the current tick to complete.

        Safe to call from within the callback itself.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        next_time = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self._callback()
            except Exception as e:
                logger_get().error(f"{self._name}: tick failed, stopping: {e}")
                self.error = e
                break
            self.ticks += 1
            # keep cadence; skip missed ticks instead of bursting
            next_time += self._interval
            now = time.monotonic()
            if next_time < now:
                next_time = now
            if self._stop_event.wait(next_time - now):
                break

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def repeat(callback: Callable[[], None], interval: float, name: str = "") -> RepeatingTimer:
    """Start invoking `callback` every `interval` seconds.

    Returns:
        RepeatingTimer: Started timer; call `stop()` to stop delivering ticks.
    """
    return RepeatingTimer(callback, interval, name).start()
