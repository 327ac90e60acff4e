"""
Delayed-call scheduling for the player.

The player never sleeps. Skip delays, auto-advance delays and the
progress tick are all handed to a Scheduler, which in production runs
them on threading.Timer threads and in tests runs them on demand.
"""

import logging
import threading
from typing import Callable, List, Protocol

logger = logging.getLogger(__name__)


class ScheduledCall(Protocol):
    """Handle for a pending delayed call."""

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """
    Protocol for the player's timer source.

    call_later() must not run the callback synchronously.
    """

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        ...

    def cancel_all(self) -> None:
        ...


class ThreadingScheduler:
    """Scheduler backed by daemon threading.Timer threads."""

    def __init__(self, name: str = "jukebox-timer"):
        self._name = name
        self._timers: List[threading.Timer] = []
        self._lock = threading.Lock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        """
        Run callback on a timer thread after delay seconds.

        Exceptions from the callback are logged, never propagated; a timer
        thread has nobody to propagate to.
        """
        timer: threading.Timer

        def run():
            with self._lock:
                if timer in self._timers:
                    self._timers.remove(timer)
            try:
                callback()
            except Exception as e:
                logger.error(f"[SCHEDULER] Scheduled callback failed: {e}", exc_info=True)

        timer = threading.Timer(delay, run)
        timer.daemon = True
        timer.name = self._name
        with self._lock:
            # Drop finished timers so the list does not grow without bound
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()
        return timer

    def cancel_all(self) -> None:
        """Cancel every timer that has not fired yet."""
        with self._lock:
            timers = self._timers
            self._timers = []
        for timer in timers:
            timer.cancel()
