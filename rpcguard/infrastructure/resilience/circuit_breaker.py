"""Circuit breaker for failing fast against an unhealthy endpoint.

Closed: calls pass through and failures are counted inside a sliding window.
Open: calls are rejected with CircuitOpenError until the cooldown elapses.
Half-open: calls pass through; enough consecutive successes close the circuit
and any failure reopens it.
"""

import logging
import threading
from collections import deque
from typing import Deque, Optional

from rpcguard.domain.events.resilience_events import CallRejected, CircuitStateChanged, dispatch_event
from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import CircuitBreakerPolicy, EventSink, Operation, T
from rpcguard.domain.models.errors import CircuitOpenError, InvalidConfigurationError
from rpcguard.infrastructure.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

STATE_CLOSED = "closed"
STATE_OPEN = "open"
STATE_HALF_OPEN = "half_open"


class CircuitBreaker:
    """Thread-safe three-state circuit breaker."""

    def __init__(
        self,
        failure_threshold: int = 5,
        window_seconds: float = 60,
        cooldown_seconds: float = 30,
        success_threshold: int = 2,
        clock: Optional[Clock] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes a closed circuit breaker.

        Args:
            failure_threshold: Failures inside the window that open the circuit.
            window_seconds: Length of the sliding failure window.
            cooldown_seconds: Time the circuit stays open before going half-open.
            success_threshold: Consecutive half-open successes that close it.
            clock: Time source. Defaults to the system clock.
            event_sink: Optional callable receiving state-change events.

        Raises:
            InvalidConfigurationError: If any parameter violates its constraint.
        """
        if failure_threshold < 1:
            raise InvalidConfigurationError("failure_threshold must be at least 1")
        if window_seconds <= 0:
            raise InvalidConfigurationError("window_seconds must be greater than 0")
        if cooldown_seconds <= 0:
            raise InvalidConfigurationError("cooldown_seconds must be greater than 0")
        if success_threshold < 1:
            raise InvalidConfigurationError("success_threshold must be at least 1")

        self._failure_threshold = int(failure_threshold)
        self._window_seconds = float(window_seconds)
        self._cooldown_seconds = float(cooldown_seconds)
        self._success_threshold = int(success_threshold)
        self._clock = clock or SystemClock()
        self._event_sink = event_sink

        self._lock = threading.RLock()
        self._state = STATE_CLOSED
        self._failures: Deque[float] = deque()
        self._consecutive_successes = 0
        self._opened_at: Optional[float] = None
        self._forced_open = False

    @classmethod
    def from_policy(cls, policy: CircuitBreakerPolicy, **kwargs) -> "CircuitBreaker":
        return cls(
            failure_threshold=policy['failure_threshold'],
            window_seconds=policy['window_seconds'],
            cooldown_seconds=policy['cooldown_seconds'],
            success_threshold=policy['success_threshold'],
            **kwargs
        )

    # --- Internal transitions (call with _lock held) ---

    def _transition(self, new_state: str, reason: str) -> None:
        previous = self._state
        self._state = new_state
        if previous != new_state:
            logger.warning(f"Circuit breaker {previous} -> {new_state} ({reason})")
            dispatch_event(self._event_sink, CircuitStateChanged(
                previous_state=previous, new_state=new_state,
                failure_count=len(self._failures), reason=reason,
            ))

    def _open(self, reason: str) -> None:
        self._opened_at = self._clock.monotonic()
        self._consecutive_successes = 0
        self._transition(STATE_OPEN, reason)

    def _prune_failures(self) -> None:
        window_start = self._clock.monotonic() - self._window_seconds
        while self._failures and self._failures[0] < window_start:
            self._failures.popleft()

    def _maybe_half_open(self) -> None:
        if self._state != STATE_OPEN or self._forced_open or self._opened_at is None:
            return
        if self._clock.monotonic() - self._opened_at >= self._cooldown_seconds:
            self._consecutive_successes = 0
            self._transition(STATE_HALF_OPEN, "cooldown elapsed")

    # --- Public API ---

    def call(self, operation: Operation[T]) -> T:
        """Runs ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not run.
            Exception: Whatever the operation raises, after it is recorded as a failure.
        """
        with self._lock:
            self._maybe_half_open()
            if self._state == STATE_OPEN:
                dispatch_event(self._event_sink, CallRejected(guard="circuit_breaker", reason="circuit open"))
                raise CircuitOpenError("Circuit breaker is open. Service is unavailable.")

        try:
            result = operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        with self._lock:
            if self._state == STATE_HALF_OPEN:
                self._consecutive_successes += 1
                if self._consecutive_successes >= self._success_threshold:
                    self.close()
            elif self._state == STATE_CLOSED:
                self._failures.clear()

    def record_failure(self) -> None:
        with self._lock:
            if self._state == STATE_HALF_OPEN:
                self._open("failure while half-open")
                return
            self._failures.append(self._clock.monotonic())
            self._prune_failures()
            if self._state == STATE_CLOSED and len(self._failures) >= self._failure_threshold:
                self._open(f"{len(self._failures)} failures within {self._window_seconds:g}s")

    def force_open(self) -> None:
        """Opens the circuit and keeps it open until ``close`` is called."""
        with self._lock:
            self._forced_open = True
            self._open("forced open")

    def close(self) -> None:
        """Closes the circuit and clears all failure history."""
        with self._lock:
            self._failures.clear()
            self._consecutive_successes = 0
            self._opened_at = None
            self._forced_open = False
            self._transition(STATE_CLOSED, "closed")

    # --- State accessors ---

    @property
    def state(self) -> str:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def is_open(self) -> bool:
        return self.state == STATE_OPEN

    def is_closed(self) -> bool:
        return self.state == STATE_CLOSED

    def is_half_open(self) -> bool:
        return self.state == STATE_HALF_OPEN

    def is_forced_open(self) -> bool:
        return self._forced_open

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._prune_failures()
            return len(self._failures)

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    @property
    def success_threshold(self) -> int:
        return self._success_threshold
