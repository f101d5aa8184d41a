"""Domain Events related to rate limiting, retries and circuit breaking.

Examples include events for when tokens are granted or deferred, retries are
scheduled, operations succeed or fail, and circuits change state.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Optional

from rpcguard.domain.models.common import EventSink

logger = logging.getLogger(__name__)

# Base Event Class
@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass

# --- Rate Limiter Events ---

@dataclass
class TokensAcquired(DomainEvent):
    """Event triggered when tokens are deducted from a bucket."""
    tokens: int
    remaining: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class AcquireDeferred(DomainEvent):
    """Event triggered when a blocking acquire has to wait for a refill."""
    tokens: int
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)

# --- Retry Events ---

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed operation."""
    attempt_number: int
    delay_ms: float
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class OperationSucceeded(DomainEvent):
    """Event triggered when an operation returns a result."""
    attempts: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class OperationFailed(DomainEvent):
    """Event triggered when an operation fails definitively.

    ``retries_exhausted`` tells apart "ran out of attempts" from
    "non-retryable on the attempt it happened".
    """
    attempts: int
    error_type: str
    error_message: str
    retries_exhausted: bool
    timestamp: float = field(default_factory=time.time)

# --- Circuit Breaker Events ---

@dataclass
class CircuitStateChanged(DomainEvent):
    """Event triggered when a circuit breaker moves between states."""
    previous_state: str
    new_state: str
    failure_count: int
    reason: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class CallRejected(DomainEvent):
    """Event triggered when a guard rejects a call without running it."""
    guard: str  # e.g., 'circuit_breaker', 'bulkhead'
    reason: str
    timestamp: float = field(default_factory=time.time)


def log_event(event: DomainEvent) -> None:
    """Default event sink: writes the event to the debug log."""
    logger.debug(f"EVENT: {event}")


def dispatch_event(sink: Optional[EventSink], event: DomainEvent) -> None:
    """Delivers an event to a sink without letting sink errors escape into the guard."""
    target = sink or log_event
    try:
        target(event)
    except Exception as e:
        logger.error(f"Event sink failed for {type(event).__name__}: {e}", exc_info=True)
