"""Builds resilience guards from the layered configuration.

Each builder reads its section through the typed accessors in
``rpcguard.infrastructure.config.settings``; keyword overrides win over
configured values.
"""

import logging
from typing import Any, Optional

from rpcguard.domain.interfaces.clock import Clock
from rpcguard.domain.models.common import EventSink
from rpcguard.infrastructure.config.settings import (
    get_breaker_settings,
    get_bulkhead_max_concurrent,
    get_rate_limit_settings,
    get_retry_settings,
)
from rpcguard.infrastructure.resilience.bulkhead import Bulkhead
from rpcguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from rpcguard.infrastructure.resilience.rate_limiter import TokenBucketLimiter
from rpcguard.infrastructure.resilience.resilient_caller import ResilientCaller
from rpcguard.infrastructure.resilience.retry_executor import RetryExecutor

logger = logging.getLogger(__name__)


def build_rate_limiter_from_config(
    clock: Optional[Clock] = None,
    event_sink: Optional[EventSink] = None,
    **overrides: Any
) -> TokenBucketLimiter:
    settings = get_rate_limit_settings()
    settings.update(overrides)
    return TokenBucketLimiter(
        rate=settings['rate'],
        capacity=settings['capacity'],
        clock=clock,
        event_sink=event_sink,
    )


def build_retry_executor_from_config(
    clock: Optional[Clock] = None,
    event_sink: Optional[EventSink] = None,
    **overrides: Any
) -> RetryExecutor:
    policy = get_retry_settings()
    policy.update(overrides)
    return RetryExecutor.from_policy(policy, clock=clock, event_sink=event_sink)


def build_circuit_breaker_from_config(
    clock: Optional[Clock] = None,
    event_sink: Optional[EventSink] = None,
    **overrides: Any
) -> CircuitBreaker:
    policy = get_breaker_settings()
    policy.update(overrides)
    return CircuitBreaker.from_policy(policy, clock=clock, event_sink=event_sink)


def build_bulkhead_from_config(event_sink: Optional[EventSink] = None, max_concurrent: Optional[int] = None) -> Bulkhead:
    if max_concurrent is None:
        max_concurrent = get_bulkhead_max_concurrent()
    return Bulkhead(max_concurrent=max_concurrent, event_sink=event_sink)


def build_resilient_caller_from_config(
    clock: Optional[Clock] = None,
    event_sink: Optional[EventSink] = None,
    with_circuit_breaker: bool = True,
    with_bulkhead: bool = True,
) -> ResilientCaller:
    """Builds a ResilientCaller with every configured guard.

    Args:
        clock: Shared clock for the limiter, executor and breaker.
        event_sink: Shared sink for all guard events.
        with_circuit_breaker: Include a circuit breaker.
        with_bulkhead: Include a bulkhead.
    """
    caller = ResilientCaller(
        rate_limiter=build_rate_limiter_from_config(clock=clock, event_sink=event_sink),
        retry_executor=build_retry_executor_from_config(clock=clock, event_sink=event_sink),
        circuit_breaker=build_circuit_breaker_from_config(clock=clock, event_sink=event_sink) if with_circuit_breaker else None,
        bulkhead=build_bulkhead_from_config(event_sink=event_sink) if with_bulkhead else None,
    )
    logger.debug("ResilientCaller built from configuration.")
    return caller
