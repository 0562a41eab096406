"""
Cancellable debouncer.

Each schedule() cancels the pending timer and starts a new one; the action
runs once when a timer fires without being replaced. The timer handle is
held explicitly so cancel() and close() are deterministic.
"""

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def start(self) -> None: ...
    def cancel(self) -> None: ...


# (delay_seconds, callback) -> unstarted timer
TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class Debouncer:
    """
    Coalesces bursts of calls into one action after a quiet period.

    Args:
        delay: Quiet period in seconds
        action: Called with no arguments once the period elapses
        timer_factory: Builds timers; tests inject a manual one
    """

    def __init__(
        self,
        delay: float,
        action: Callable[[], None],
        *,
        timer_factory: Optional[TimerFactory] = None,
    ):
        self.delay = delay
        self._action = action
        self._timer_factory = timer_factory or _thread_timer
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """(Re)start the quiet period."""
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()

    def cancel(self) -> None:
        """Drop the pending action, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def close(self) -> None:
        """Cancel and refuse further scheduling."""
        self.cancel()
        with self._lock:
            self._closed = True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer that was superseded or cancelled after firing began does nothing
            if generation != self._generation or self._closed:
                return
            self._timer = None
        try:
            self._action()
        except Exception as e:
            logger.warning("Debounced action failed: %s", e)
