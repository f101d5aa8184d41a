"""Virtual clock for deterministic tests and simulations.

Time only moves when ``advance`` or ``sleep`` is called, so code that waits
for a refill or a backoff delay runs instantly while still observing the
elapsed time it asked for.
"""

import logging
import threading
from typing import List, Optional

from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import Seconds

logger = logging.getLogger(__name__)


class ManualClock(Clock):
    """Clock whose readings are controlled by the caller."""

    def __init__(self, start: float = 0.0, advance_on_sleep: bool = True):
        """Initializes the clock.

        Args:
            start: Initial reading in seconds.
            advance_on_sleep: If True, ``sleep`` moves virtual time forward by
                the requested duration. If False, sleeps are only recorded.
        """
        self._now = float(start)
        self.advance_on_sleep = advance_on_sleep
        self.sleeps: List[float] = []  # Every requested sleep, in seconds
        self._lock = threading.Lock()

    def monotonic(self) -> Seconds:
        with self._lock:
            return Seconds(self._now)

    def advance(self, seconds: float) -> None:
        """Moves virtual time forward."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards.")
        with self._lock:
            self._now += seconds

    def advance_ms(self, milliseconds: float) -> None:
        self.advance(milliseconds / 1000.0)

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        with self._lock:
            self.sleeps.append(seconds)
            if self.advance_on_sleep and seconds > 0:
                self._now += seconds
        logger.debug(f"ManualClock slept {seconds:.6f}s (now={self._now:.6f})")
        return cancel_event.is_set() if cancel_event is not None else False

    @property
    def total_slept(self) -> float:
        """Sum of all recorded sleeps, in seconds."""
        with self._lock:
            return sum(self.sleeps)
