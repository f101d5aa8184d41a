"""Resilience Implementations.

Contains the token-bucket rate limiter, the retry executor with exponential
backoff and jitter, the circuit breaker, the bulkhead, and the caller that
composes them.
Bounded Context: RPC Resilience
"""
