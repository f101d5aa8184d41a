"""Composes the resilience guards around a single outbound call.

Order of application for one ``call``:

1. Bulkhead slot (rejects immediately when full).
2. Rate limiter token (blocks until available), once per call or once per
   attempt when ``limit_each_attempt`` is set.
3. Retry executor, where every attempt passes through the circuit breaker.

Every guard is optional. Errors raised by the guards themselves
(ResilienceError subclasses, e.g. CircuitOpenError) are never retried.
"""

import logging
import threading
from typing import Iterable, Optional, Union

from rpcguard.domain.models.common import Operation, T
from rpcguard.domain.models.errors import ResilienceError
from rpcguard.domain.models.failures import DEFAULT_TRANSIENT_KINDS, KindSpec, kind_set
from rpcguard.infrastructure.resilience.bulkhead import Bulkhead
from rpcguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from rpcguard.infrastructure.resilience.rate_limiter import TokenBucketLimiter
from rpcguard.infrastructure.resilience.retry_executor import RetryExecutor

logger = logging.getLogger(__name__)


class ResilientCaller:
    """Runs operations through a configurable stack of resilience guards."""

    def __init__(
        self,
        rate_limiter: Optional[TokenBucketLimiter] = None,
        retry_executor: Optional[RetryExecutor] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        bulkhead: Optional[Bulkhead] = None,
        retryable_kinds: Union[KindSpec, Iterable[KindSpec]] = DEFAULT_TRANSIENT_KINDS,
        tokens_per_call: int = 1,
        limit_each_attempt: bool = False,
    ):
        """Initializes the ResilientCaller.

        Args:
            rate_limiter: Optional limiter consulted before running the operation.
            retry_executor: Optional executor; without it the operation runs once.
            circuit_breaker: Optional breaker wrapped around each attempt.
            bulkhead: Optional concurrency cap held for the whole call.
            retryable_kinds: Default kinds retried when ``call`` is given none.
            tokens_per_call: Tokens taken from the limiter per acquisition.
            limit_each_attempt: If True, every retry attempt takes its own tokens.
        """
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor
        self.circuit_breaker = circuit_breaker
        self.bulkhead = bulkhead
        self.retryable_kinds = kind_set(retryable_kinds)
        self.tokens_per_call = tokens_per_call
        self.limit_each_attempt = limit_each_attempt

        logger.info(
            "ResilientCaller initialized: "
            f"limiter={'on' if rate_limiter else 'off'}, retry={'on' if retry_executor else 'off'}, "
            f"breaker={'on' if circuit_breaker else 'off'}, bulkhead={'on' if bulkhead else 'off'}"
        )

    def call(
        self,
        operation: Operation[T],
        retryable_kinds: Optional[Union[KindSpec, Iterable[KindSpec]]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """Runs ``operation`` through every configured guard.

        Args:
            operation: Zero-argument callable performing the RPC.
            retryable_kinds: Overrides the caller-wide retryable kinds.
            cancel_event: Optional event aborting token waits and retries.

        Returns:
            The operation's result.

        Raises:
            BulkheadFullError: If no concurrency slot is free.
            CircuitOpenError: If the breaker rejects an attempt.
            OperationCancelledError: If ``cancel_event`` is set while waiting.
            Exception: The operation's own failure, unchanged.
        """
        if self.bulkhead is not None:
            return self.bulkhead.execute(lambda: self._call_limited(operation, retryable_kinds, cancel_event))
        return self._call_limited(operation, retryable_kinds, cancel_event)

    def _acquire(self, cancel_event: Optional[threading.Event]) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire(self.tokens_per_call, cancel_event=cancel_event)

    def _call_limited(
        self,
        operation: Operation[T],
        retryable_kinds: Optional[Union[KindSpec, Iterable[KindSpec]]],
        cancel_event: Optional[threading.Event],
    ) -> T:
        if not self.limit_each_attempt:
            self._acquire(cancel_event)

        def attempt() -> T:
            if self.limit_each_attempt:
                self._acquire(cancel_event)
            if self.circuit_breaker is not None:
                return self.circuit_breaker.call(operation)
            return operation()

        if self.retry_executor is None:
            return attempt()

        kinds = self.retryable_kinds if retryable_kinds is None else kind_set(retryable_kinds)
        return self.retry_executor.execute(
            attempt,
            kinds,
            cancel_event=cancel_event,
            non_retryable_kinds=(ResilienceError,),
        )
