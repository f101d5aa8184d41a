"""Defines common Value Objects used across the resilience components.

These objects represent simple values or concepts like durations, token
counts and failure tags, ensuring consistency across limiter, retry and
breaker code.
"""

from typing import Any, Callable, List, NewType, Optional, TypedDict, TypeVar

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are numbers/strings at runtime.
Milliseconds = NewType("Milliseconds", float)    # Delay or duration in milliseconds
Seconds = NewType("Seconds", float)              # Clock readings and waits
FailureKindTag = NewType("FailureKindTag", str)  # Classification tag carried by a failure

# === Operations ===
T = TypeVar("T")
Operation = Callable[[], T]  # Zero-argument unit of work wrapped by the guards

# --- Structured Data ---
class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_attempts: int
    base_delay_ms: float
    backoff_multiplier: float
    jitter_ms: float
    max_delay_ms: float

class RateLimitPolicy(TypedDict):
    """Value Object representing token bucket configuration."""
    rate: float
    capacity: Optional[int]

class LoggingSettings(TypedDict):
    """Value Object for root logger setup; ``level`` is a logging constant."""
    level: int
    format: str
    file: Optional[str]

class CircuitBreakerPolicy(TypedDict):
    """Value Object representing circuit breaker configuration."""
    failure_threshold: int
    window_seconds: float
    cooldown_seconds: float
    success_threshold: int

class LimiterSnapshot(TypedDict):
    """Point-in-time view of a token bucket."""
    requests_per_second: float
    bucket_capacity: int
    available_tokens: float

class BulkheadStats(TypedDict):
    """Point-in-time view of bulkhead slot usage."""
    active: int
    max_concurrent: int
    available: int
    utilization_percent: float

class AdmissionRecord(TypedDict):
    """One request outcome in a limiter simulation."""
    request_number: int
    at_ms: float
    admitted: bool
    tokens_after: float

class DelayScheduleEntry(TypedDict):
    """Delay applied after a failed attempt before the next one."""
    attempt: int
    delay_ms: float
    max_with_jitter_ms: float

DelaySchedule = List[DelayScheduleEntry]

EventSink = Callable[[Any], None]  # Receives DomainEvent instances
