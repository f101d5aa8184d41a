import threading
import time
from typing import Optional

from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import Seconds


class SystemClock(Clock):
    """Concrete Clock backed by ``time.monotonic`` and real sleeping.

    When a cancel event is given, the sleep waits on the event instead so it
    can end as soon as the event is set.
    """

    def monotonic(self) -> Seconds:
        return Seconds(time.monotonic())

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        if cancel_event is not None:
            if seconds <= 0:
                return cancel_event.is_set()
            return cancel_event.wait(seconds)
        if seconds > 0:
            time.sleep(seconds)
        return False
