"""Error types raised by the resilience components themselves.

Failures produced by wrapped operations are never converted into these;
they propagate unchanged. These cover misconfiguration, bad per-call
arguments and the guard decisions (cancelled, timed out, circuit open,
bulkhead full).
"""


class ResilienceError(Exception):
    """Base class for all errors raised by rpcguard."""


class InvalidConfigurationError(ResilienceError, ValueError):
    """A constructor parameter violates its constraint."""


class InvalidArgumentError(ResilienceError, ValueError):
    """A per-call argument is invalid (e.g., requesting fewer than 1 token)."""


class OperationCancelledError(ResilienceError):
    """A cancellation signal was observed while waiting or between retries."""


class AcquireTimeoutError(ResilienceError, TimeoutError):
    """Blocking token acquisition could not complete within its timeout."""

    def __init__(self, tokens: int, timeout: float):
        self.tokens = tokens
        self.timeout = timeout
        super().__init__(f"Could not acquire {tokens} token(s) within {timeout:.3f}s")


class CircuitOpenError(ResilienceError):
    """Raised when a call is rejected because the circuit breaker is open."""


class BulkheadFullError(ResilienceError):
    """Raised when a call is rejected because every bulkhead slot is busy."""

    def __init__(self, active: int, max_concurrent: int):
        self.active = active
        self.max_concurrent = max_concurrent
        super().__init__(f"Bulkhead is full. Active: {active}/{max_concurrent}")
