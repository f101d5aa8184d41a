"""rpcguard: resilience core for outbound RPC calls.

Provides a token-bucket rate limiter and a retry executor with exponential
backoff and jitter, plus a circuit breaker, a bulkhead and a composed caller
for wrapping calls to flaky remote endpoints.
"""

from rpcguard.domain.models.errors import (
    AcquireTimeoutError,
    BulkheadFullError,
    CircuitOpenError,
    InvalidArgumentError,
    InvalidConfigurationError,
    OperationCancelledError,
    ResilienceError,
)
from rpcguard.domain.models.failures import ClassifiedError, FailureKind, failure_kinds, is_retryable
from rpcguard.infrastructure.clock.system_clock import SystemClock
from rpcguard.infrastructure.clock.manual_clock import ManualClock
from rpcguard.infrastructure.resilience.rate_limiter import TokenBucketLimiter
from rpcguard.infrastructure.resilience.retry_executor import RetryExecutor
from rpcguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from rpcguard.infrastructure.resilience.bulkhead import Bulkhead
from rpcguard.infrastructure.resilience.resilient_caller import ResilientCaller

__version__ = "0.1.0"

__all__ = [
    "AcquireTimeoutError",
    "Bulkhead",
    "BulkheadFullError",
    "CircuitBreaker",
    "CircuitOpenError",
    "ClassifiedError",
    "FailureKind",
    "InvalidArgumentError",
    "InvalidConfigurationError",
    "ManualClock",
    "OperationCancelledError",
    "ResilienceError",
    "ResilientCaller",
    "RetryExecutor",
    "SystemClock",
    "TokenBucketLimiter",
    "failure_kinds",
    "is_retryable",
]
