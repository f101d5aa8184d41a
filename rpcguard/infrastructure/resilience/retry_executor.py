"""Service for executing operations with automatic retries.

Implements exponential backoff with jitter for transient failures such as
timeouts, connection resets, 429s or 5xx responses. Which failures count as
transient is decided by the caller through a set of retryable kinds.
"""

import functools
import logging
import random
import threading
from typing import Any, Callable, Iterable, Optional, Union

from rpcguard.domain.events.resilience_events import (
    OperationFailed,
    OperationSucceeded,
    RetryScheduled,
    dispatch_event,
)
from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import BackoffPolicy, DelaySchedule, DelayScheduleEntry, EventSink, Milliseconds, Operation, T
from rpcguard.domain.models.errors import InvalidArgumentError, InvalidConfigurationError, OperationCancelledError
from rpcguard.domain.models.failures import KindSpec, is_retryable, kind_set
from rpcguard.infrastructure.clock.system_clock import SystemClock

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 100
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_JITTER_MS = 0
DEFAULT_MAX_DELAY_MS = 30000

# Retry anything that is an Exception unless the caller narrows it.
DEFAULT_RETRYABLE_KINDS = (Exception,)


class RetryExecutor:
    """Runs operations, retrying classified-transient failures with backoff.

    Holds only immutable configuration, so one instance can serve many
    concurrent ``execute`` calls.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: float = DEFAULT_BASE_DELAY_MS,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        jitter_ms: float = DEFAULT_JITTER_MS,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the RetryExecutor.

        Args:
            max_attempts: Total attempts including the first one (>= 1).
            base_delay_ms: Delay before the first retry (>= 0).
            backoff_multiplier: Growth factor per retry (>= 1.0).
            jitter_ms: Upper bound of the random delay added to each wait (>= 0).
            max_delay_ms: Cap on the exponential part of the delay (>= base_delay_ms).
            clock: Sleeper used between attempts. Defaults to the system clock.
            rng: Random source for jitter. Defaults to a fresh ``random.Random``.
            event_sink: Optional callable receiving retry events.

        Raises:
            InvalidConfigurationError: If any parameter violates its constraint.
        """
        if max_attempts < 1:
            raise InvalidConfigurationError("max_attempts must be at least 1")
        if base_delay_ms < 0:
            raise InvalidConfigurationError("base_delay_ms must be non-negative")
        if backoff_multiplier < 1.0:
            raise InvalidConfigurationError("backoff_multiplier must be at least 1.0")
        if jitter_ms < 0:
            raise InvalidConfigurationError("jitter_ms must be non-negative")
        if max_delay_ms < base_delay_ms:
            raise InvalidConfigurationError("max_delay_ms must be >= base_delay_ms")

        self._max_attempts = int(max_attempts)
        self._base_delay_ms = base_delay_ms
        self._backoff_multiplier = float(backoff_multiplier)
        self._jitter_ms = jitter_ms
        self._max_delay_ms = max_delay_ms
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()
        self._event_sink = event_sink

        logger.info(
            f"RetryExecutor initialized: max_attempts={self._max_attempts}, "
            f"base_delay={self._base_delay_ms}ms, factor={self._backoff_multiplier}, "
            f"jitter={self._jitter_ms}ms, max_delay={self._max_delay_ms}ms"
        )

    @classmethod
    def from_policy(cls, policy: BackoffPolicy, **kwargs: Any) -> "RetryExecutor":
        """Builds an executor from a BackoffPolicy value object."""
        return cls(
            max_attempts=policy['max_attempts'],
            base_delay_ms=policy['base_delay_ms'],
            backoff_multiplier=policy['backoff_multiplier'],
            jitter_ms=policy['jitter_ms'],
            max_delay_ms=policy['max_delay_ms'],
            **kwargs
        )

    # --- Configuration accessors ---

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def base_delay_ms(self) -> float:
        return self._base_delay_ms

    @property
    def backoff_multiplier(self) -> float:
        return self._backoff_multiplier

    @property
    def jitter_ms(self) -> float:
        return self._jitter_ms

    @property
    def max_delay_ms(self) -> float:
        return self._max_delay_ms

    def policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self._max_attempts,
            base_delay_ms=self._base_delay_ms,
            backoff_multiplier=self._backoff_multiplier,
            jitter_ms=self._jitter_ms,
            max_delay_ms=self._max_delay_ms,
        )

    # --- Delay computation ---

    def _capped_delay(self, attempt: int) -> float:
        if attempt < 1:
            raise InvalidArgumentError("attempt must be at least 1")
        if self._base_delay_ms == 0:
            return 0.0
        try:
            raw = self._base_delay_ms * (self._backoff_multiplier ** (attempt - 1))
        except OverflowError:
            # Growth past float range is above any cap
            return self._max_delay_ms
        return min(raw, self._max_delay_ms)

    def calculate_delay(self, attempt: int) -> Milliseconds:
        """Computes the wait after failed attempt number ``attempt``.

        ``min(base * multiplier^(attempt - 1), max_delay)`` plus a uniform
        random jitter in ``[0, jitter_ms]``. Jitter only ever adds.

        Args:
            attempt: The 1-indexed attempt that just failed.

        Returns:
            The delay in milliseconds.

        Raises:
            InvalidArgumentError: If attempt is less than 1.
        """
        capped = self._capped_delay(attempt)
        jitter = self._rng.uniform(0, self._jitter_ms) if self._jitter_ms > 0 else 0.0
        return Milliseconds(capped + jitter)

    def delay_schedule(self) -> DelaySchedule:
        """Lists the jitter-free wait after each attempt that can still be retried."""
        schedule: DelaySchedule = []
        for attempt in range(1, self._max_attempts):
            delay = self._capped_delay(attempt)
            schedule.append(DelayScheduleEntry(
                attempt=attempt,
                delay_ms=delay,
                max_with_jitter_ms=delay + self._jitter_ms,
            ))
        return schedule

    def worst_case_delay_ms(self) -> float:
        """Upper bound on total time spent sleeping across one ``execute`` call."""
        return sum(entry['max_with_jitter_ms'] for entry in self.delay_schedule())

    # --- Execution ---

    def execute(
        self,
        operation: Operation[T],
        retryable_kinds: Union[KindSpec, Iterable[KindSpec]] = DEFAULT_RETRYABLE_KINDS,
        cancel_event: Optional[threading.Event] = None,
        non_retryable_kinds: Union[KindSpec, Iterable[KindSpec]] = (),
    ) -> T:
        """Executes ``operation``, retrying failures whose kind is retryable.

        Args:
            operation: Zero-argument callable performing one attempt.
            retryable_kinds: Kind tags and/or exception classes eligible for retry.
            cancel_event: Optional event that stops further retries once set.
            non_retryable_kinds: Kinds that are never retried, even when they
                also match ``retryable_kinds``.

        Returns:
            Whatever ``operation`` returns on its first successful attempt.

        Raises:
            Exception: The original failure, unchanged, if it is not retryable
                or if attempts are exhausted.
            OperationCancelledError: If ``cancel_event`` is set before or
                during a backoff wait. The last failure is chained as its cause.
        """
        retryable = kind_set(retryable_kinds)
        excluded = kind_set(non_retryable_kinds)
        attempt = 1

        while True:
            try:
                result = operation()
            except Exception as e:
                if is_retryable(e, excluded) or not is_retryable(e, retryable):
                    logger.error(f"Non-retryable error on attempt {attempt}: {type(e).__name__}: {e}")
                    dispatch_event(self._event_sink, OperationFailed(
                        attempts=attempt, error_type=type(e).__name__, error_message=str(e),
                        retries_exhausted=False,
                    ))
                    raise

                if attempt >= self._max_attempts:
                    logger.error(
                        f"Max attempts ({self._max_attempts}) reached. Last error: {type(e).__name__}: {e}"
                    )
                    dispatch_event(self._event_sink, OperationFailed(
                        attempts=attempt, error_type=type(e).__name__, error_message=str(e),
                        retries_exhausted=True,
                    ))
                    raise

                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError(f"Retry cancelled after attempt {attempt}") from e

                delay_ms = self.calculate_delay(attempt)
                logger.warning(
                    f"Retryable error on attempt {attempt}/{self._max_attempts}: {type(e).__name__}. "
                    f"Waiting {delay_ms:.0f}ms..."
                )
                dispatch_event(self._event_sink, RetryScheduled(
                    attempt_number=attempt, delay_ms=delay_ms,
                    error_type=type(e).__name__, error_message=str(e),
                ))

                if self._clock.sleep(delay_ms / 1000.0, cancel_event):
                    raise OperationCancelledError(f"Retry cancelled after attempt {attempt}") from e
                attempt += 1
                continue

            dispatch_event(self._event_sink, OperationSucceeded(attempts=attempt))
            return result

    def wrap(
        self,
        retryable_kinds: Union[KindSpec, Iterable[KindSpec]] = DEFAULT_RETRYABLE_KINDS,
    ) -> Callable[[Callable[..., T]], Callable[..., T]]:
        """Decorator form of ``execute`` for functions taking arguments."""
        kinds = kind_set(retryable_kinds)

        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            @functools.wraps(func)
            def wrapper(*args: Any, **kwargs: Any) -> T:
                return self.execute(lambda: func(*args, **kwargs), kinds)
            return wrapper

        return decorator
