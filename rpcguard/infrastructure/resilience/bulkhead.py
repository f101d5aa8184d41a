"""Bulkhead: caps how many calls may be in flight at once.

Calls beyond the limit are rejected immediately with BulkheadFullError rather
than queued.
"""

import logging
import threading
from typing import Optional

from rpcguard.domain.events.resilience_events import CallRejected, dispatch_event
from rpcguard.domain.models.common import BulkheadStats, EventSink, Operation, T
from rpcguard.domain.models.errors import BulkheadFullError, InvalidConfigurationError

logger = logging.getLogger(__name__)


class Bulkhead:
    """Thread-safe concurrency limiter with a fixed number of slots."""

    def __init__(self, max_concurrent: int = 10, event_sink: Optional[EventSink] = None):
        if max_concurrent < 1:
            raise InvalidConfigurationError("max_concurrent must be at least 1")
        self._max_concurrent = int(max_concurrent)
        self._active = 0
        self._lock = threading.Lock()
        self._event_sink = event_sink
        logger.info(f"Bulkhead initialized: {self._max_concurrent} concurrent slots")

    def try_acquire(self) -> bool:
        """Takes a slot if one is free."""
        with self._lock:
            if self._active < self._max_concurrent:
                self._active += 1
                return True
            return False

    def release(self) -> None:
        """Returns a slot. Extra releases are ignored."""
        with self._lock:
            if self._active > 0:
                self._active -= 1
            else:
                logger.warning("Bulkhead release called with no active slots.")

    def execute(self, operation: Operation[T]) -> T:
        """Runs ``operation`` in a slot, always releasing it afterwards.

        Raises:
            BulkheadFullError: If every slot is busy; the operation is not run.
        """
        if not self.try_acquire():
            active = self.active_count
            dispatch_event(self._event_sink, CallRejected(guard="bulkhead", reason="no free slot"))
            raise BulkheadFullError(active, self._max_concurrent)
        try:
            return operation()
        finally:
            self.release()

    def has_capacity(self) -> bool:
        with self._lock:
            return self._active < self._max_concurrent

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def available_slots(self) -> int:
        with self._lock:
            return max(0, self._max_concurrent - self._active)

    def reset(self) -> None:
        with self._lock:
            self._active = 0

    def stats(self) -> BulkheadStats:
        with self._lock:
            active = self._active
        return BulkheadStats(
            active=active,
            max_concurrent=self._max_concurrent,
            available=max(0, self._max_concurrent - active),
            utilization_percent=(active / self._max_concurrent) * 100,
        )
