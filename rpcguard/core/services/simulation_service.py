"""Service for previewing resilience behaviour in virtual time.

Runs the real limiter and retry executor against a ManualClock so a user can
see admission decisions and backoff waits without any real delay or network
traffic.
"""

import logging
import random
from typing import List, Optional, TypedDict

from rpcguard.domain.models.common import AdmissionRecord, BackoffPolicy, DelaySchedule
from rpcguard.domain.models.errors import InvalidArgumentError
from rpcguard.domain.models.failures import FailureKind, TransientRpcError
from rpcguard.infrastructure.clock.manual_clock import ManualClock
from rpcguard.infrastructure.resilience.rate_limiter import TokenBucketLimiter
from rpcguard.infrastructure.resilience.retry_executor import RetryExecutor

logger = logging.getLogger(__name__)


class RetryRehearsal(TypedDict):
    """Outcome of running a scripted failing operation through an executor."""
    attempts: int
    succeeded: bool
    waits_ms: List[float]
    total_wait_ms: float


class SimulationService:
    """Builds limiters/executors on a virtual clock and reports what they do."""

    def backoff_schedule(self, policy: BackoffPolicy) -> DelaySchedule:
        """Returns the per-attempt delays for a retry policy."""
        executor = RetryExecutor.from_policy(policy, clock=ManualClock())
        return executor.delay_schedule()

    def worst_case_wait_ms(self, policy: BackoffPolicy) -> float:
        executor = RetryExecutor.from_policy(policy, clock=ManualClock())
        return executor.worst_case_delay_ms()

    def simulate_limiter(
        self,
        rate: float,
        capacity: Optional[int],
        requests: int,
        interval_ms: float,
    ) -> List[AdmissionRecord]:
        """Sends ``requests`` evenly spaced non-blocking requests at a fresh limiter.

        Args:
            rate: Limiter refill rate in tokens per second.
            capacity: Bucket capacity, or None for the default.
            requests: Number of requests to send.
            interval_ms: Virtual time between consecutive requests.

        Returns:
            One AdmissionRecord per request.
        """
        if requests < 1:
            raise InvalidArgumentError("requests must be at least 1")
        if interval_ms < 0:
            raise InvalidArgumentError("interval_ms must be non-negative")

        clock = ManualClock()
        limiter = TokenBucketLimiter(rate=rate, capacity=capacity, clock=clock)
        records: List[AdmissionRecord] = []
        for number in range(1, requests + 1):
            if number > 1:
                clock.advance_ms(interval_ms)
            admitted = limiter.try_acquire(1)
            records.append(AdmissionRecord(
                request_number=number,
                at_ms=clock.monotonic() * 1000.0,
                admitted=admitted,
                tokens_after=limiter.get_available_tokens(),
            ))
        logger.debug(f"Limiter simulation admitted {sum(r['admitted'] for r in records)}/{requests}")
        return records

    def rehearse_retries(
        self,
        policy: BackoffPolicy,
        failures_before_success: int,
        seed: Optional[int] = None,
    ) -> RetryRehearsal:
        """Runs an operation that fails transiently ``failures_before_success`` times.

        Args:
            policy: Retry policy to rehearse.
            failures_before_success: Transient failures raised before the
                operation starts succeeding.
            seed: Optional seed for the jitter source.
        """
        if failures_before_success < 0:
            raise InvalidArgumentError("failures_before_success must be non-negative")

        clock = ManualClock()
        executor = RetryExecutor.from_policy(policy, clock=clock, rng=random.Random(seed))
        calls = 0

        def scripted_operation() -> str:
            nonlocal calls
            calls += 1
            if calls <= failures_before_success:
                raise TransientRpcError(f"simulated transient failure #{calls}")
            return "ok"

        succeeded = True
        try:
            executor.execute(scripted_operation, {FailureKind.TRANSIENT})
        except TransientRpcError:
            succeeded = False

        waits_ms = [seconds * 1000.0 for seconds in clock.sleeps]
        return RetryRehearsal(
            attempts=calls,
            succeeded=succeeded,
            waits_ms=waits_ms,
            total_wait_ms=sum(waits_ms),
        )
