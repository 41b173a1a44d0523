"""
Periodic ticks and one-shot timers.

The recorder receives these as factories, so tests can swap in hand-driven
fakes and step simulated time deterministically.
"""
import threading
from typing import Callable, Optional

from .logging_utils import setup_logger

logger = setup_logger("voicepipe.scheduling")


class IntervalTicker:
    """Call ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None], name: Optional[str] = None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name or "IntervalTicker", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Ticker callback failed: {e}", exc_info=True)

    def cancel(self, timeout: float = 1.0) -> None:
        """Stop ticking. Safe to call from inside the callback."""
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()


def start_timer(delay: float, callback: Callable[[], None], name: Optional[str] = None) -> threading.Timer:
    """Start a one-shot daemon timer and return it for cancellation."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    if name:
        timer.name = name
    timer.start()
    return timer


__all__ = ["IntervalTicker", "start_timer"]
