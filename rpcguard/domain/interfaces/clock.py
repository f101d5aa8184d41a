"""Interface for reading time and suspending the calling thread.

The limiter, retry executor and circuit breaker never call ``time`` directly;
they receive a Clock so tests and simulations can run in virtual time.
"""

import abc
import threading
from typing import Optional

from rpcguard.domain.models.common import Seconds


class Clock(abc.ABC):
    """Abstract Base Class for monotonic time and cooperative sleeping."""

    @abc.abstractmethod
    def monotonic(self) -> Seconds:
        """Returns a monotonic clock reading in seconds.

        Only differences between readings are meaningful.
        """
        pass

    @abc.abstractmethod
    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        """Suspends the calling thread.

        Args:
            seconds: How long to suspend. Non-positive values return at once.
            cancel_event: Optional event; when it becomes set the sleep may end early.

        Returns:
            True if the sleep ended because ``cancel_event`` was set, False otherwise.
        """
        pass
