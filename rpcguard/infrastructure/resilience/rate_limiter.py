"""Implementation of a token-bucket rate limiter.

Controls the frequency of outgoing requests to prevent overloading RPC
endpoints. Tokens refill continuously at a fixed rate up to the bucket
capacity; each request consumes one or more tokens.
"""

import logging
import math
import threading
from typing import Optional, Tuple

from rpcguard.domain.events.resilience_events import AcquireDeferred, TokensAcquired, dispatch_event
from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import EventSink, LimiterSnapshot
from rpcguard.domain.models.errors import (
    AcquireTimeoutError,
    InvalidArgumentError,
    InvalidConfigurationError,
    OperationCancelledError,
)
from rpcguard.infrastructure.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

# Shortest wait between blocking-acquire checks.
MIN_WAIT_SECONDS = 0.001


class TokenBucketLimiter:
    """Thread-safe token bucket rate limiter.

    Allows bursts of up to ``capacity`` requests and a long-run rate of
    ``rate`` requests per second.

    Example:
        >>> limiter = TokenBucketLimiter(rate=10.0, capacity=20)
        >>> limiter.acquire()          # blocks until a token is available
        >>> if limiter.try_acquire():  # never blocks
        ...     pass
    """

    def __init__(
        self,
        rate: float,
        capacity: Optional[int] = None,
        clock: Optional[Clock] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the limiter with a full bucket.

        Args:
            rate: Tokens added per second. Must be greater than 0.
            capacity: Maximum tokens held (burst size). Defaults to ``rate``
                rounded to the nearest integer, minimum 1.
            clock: Time source and sleeper. Defaults to the system clock.
            event_sink: Optional callable receiving limiter events.

        Raises:
            InvalidConfigurationError: If rate or capacity is invalid.
        """
        if rate is None or rate <= 0:
            raise InvalidConfigurationError("rate must be greater than 0")
        if capacity is None:
            capacity = max(1, int(math.floor(rate + 0.5)))
        if capacity < 1:
            raise InvalidConfigurationError("capacity must be at least 1")

        self._rate = float(rate)
        self._capacity = int(capacity)
        self._clock = clock or SystemClock()
        self._event_sink = event_sink
        self._lock = threading.Lock()  # Guards _tokens and _last_refill

        self._tokens = float(self._capacity)
        self._last_refill = self._clock.monotonic()
        logger.info(f"TokenBucketLimiter initialized: {self._rate} tokens/s, capacity {self._capacity}")

    # --- Bucket bookkeeping (call with _lock held) ---

    def _refill(self) -> None:
        """Adds tokens for the time elapsed since the last refill."""
        now = self._clock.monotonic()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self._capacity), self._tokens + elapsed * self._rate)
        self._last_refill = now

    def _try_acquire_locked(self, tokens: int) -> Tuple[bool, float]:
        """Refills, then deducts if possible.

        Returns:
            (acquired, seconds until ``tokens`` would be available)
        """
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True, 0.0
        return False, (tokens - self._tokens) / self._rate

    @staticmethod
    def _validate_tokens(tokens: int) -> None:
        if tokens < 1:
            raise InvalidArgumentError("tokens must be at least 1")

    # --- Public API ---

    def try_acquire(self, tokens: int = 1) -> bool:
        """Takes ``tokens`` from the bucket if they are available right now.

        Args:
            tokens: Number of tokens to take (at least 1).

        Returns:
            True if the tokens were deducted, False if the bucket was left untouched.

        Raises:
            InvalidArgumentError: If tokens is less than 1.
        """
        self._validate_tokens(tokens)
        with self._lock:
            acquired, _ = self._try_acquire_locked(tokens)
            remaining = self._tokens
        if acquired:
            dispatch_event(self._event_sink, TokensAcquired(tokens=tokens, remaining=remaining))
        return acquired

    def acquire(
        self,
        tokens: int = 1,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Blocks until ``tokens`` can be taken from the bucket.

        Between checks the caller sleeps for the computed shortfall,
        ``(tokens - available) / rate`` seconds, with the lock released.

        Args:
            tokens: Number of tokens to take. Must not exceed the capacity,
                since such a request could never be satisfied.
            timeout: Optional maximum wait in seconds.
            cancel_event: Optional event that aborts the wait once set.

        Raises:
            InvalidArgumentError: If tokens < 1, tokens > capacity or timeout < 0.
            AcquireTimeoutError: If the tokens cannot be obtained within ``timeout``.
            OperationCancelledError: If ``cancel_event`` is set while waiting.
        """
        self._validate_tokens(tokens)
        if tokens > self._capacity:
            raise InvalidArgumentError(
                f"tokens ({tokens}) exceeds bucket capacity ({self._capacity}) and can never be acquired"
            )
        if timeout is not None and timeout < 0:
            raise InvalidArgumentError("timeout must be non-negative")

        deadline = None if timeout is None else self._clock.monotonic() + timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(f"Acquire of {tokens} token(s) cancelled")

            with self._lock:
                acquired, wait = self._try_acquire_locked(tokens)
                remaining = self._tokens
            if acquired:
                dispatch_event(self._event_sink, TokensAcquired(tokens=tokens, remaining=remaining))
                return

            wait = max(wait, MIN_WAIT_SECONDS)
            if deadline is not None and self._clock.monotonic() + wait > deadline:
                raise AcquireTimeoutError(tokens, timeout)

            logger.debug(f"Rate limit reached. Waiting {wait:.3f}s for {tokens} token(s).")
            dispatch_event(self._event_sink, AcquireDeferred(tokens=tokens, wait_time_seconds=wait))
            if self._clock.sleep(wait, cancel_event):
                raise OperationCancelledError(f"Acquire of {tokens} token(s) cancelled")

    def reset(self) -> None:
        """Refills the bucket to full capacity immediately."""
        with self._lock:
            self._tokens = float(self._capacity)
            self._last_refill = self._clock.monotonic()
        logger.debug("TokenBucketLimiter reset to full capacity.")

    def get_available_tokens(self) -> float:
        """Returns the current token count, including refill up to now."""
        with self._lock:
            self._refill()
            return self._tokens

    def get_requests_per_second(self) -> float:
        return self._rate

    def get_bucket_capacity(self) -> int:
        return self._capacity

    def snapshot(self) -> LimiterSnapshot:
        """Returns rate, capacity and available tokens in one consistent read."""
        return LimiterSnapshot(
            requests_per_second=self._rate,
            bucket_capacity=self._capacity,
            available_tokens=self.get_available_tokens(),
        )
