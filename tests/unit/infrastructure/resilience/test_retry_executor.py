import random
import threading

import pytest
from unittest.mock import MagicMock

from rpcguard.domain.events.resilience_events import OperationFailed, OperationSucceeded, RetryScheduled
from rpcguard.domain.models.errors import InvalidArgumentError, InvalidConfigurationError, OperationCancelledError
from rpcguard.domain.models.failures import (
    FailureKind,
    RpcServerError,
    RpcTimeoutError,
    RpcValidationError,
    TransientRpcError,
)
from rpcguard.infrastructure.clock.manual_clock import ManualClock
from rpcguard.infrastructure.resilience.retry_executor import RetryExecutor


class RuntimeFailure(Exception):
    pass


class ValidationFailure(Exception):
    pass


def failing_then(result, failures):
    """Mock operation raising each failure in turn, then returning ``result``."""
    return MagicMock(side_effect=list(failures) + [result])


@pytest.fixture
def executor(clock: ManualClock):
    return RetryExecutor(max_attempts=3, base_delay_ms=100, backoff_multiplier=2.0, jitter_ms=0, clock=clock)

# --- Construction ---

@pytest.mark.parametrize("kwargs, message", [
    ({"max_attempts": 0}, "max_attempts must be at least 1"),
    ({"base_delay_ms": -1}, "base_delay_ms must be non-negative"),
    ({"backoff_multiplier": 0.5}, "backoff_multiplier must be at least 1.0"),
    ({"jitter_ms": -5}, "jitter_ms must be non-negative"),
    ({"base_delay_ms": 1000, "max_delay_ms": 500}, "max_delay_ms must be >= base_delay_ms"),
])
def test_invalid_configuration_rejected(kwargs, message):
    with pytest.raises(InvalidConfigurationError, match=message):
        RetryExecutor(**kwargs)

def test_defaults():
    executor = RetryExecutor()
    assert executor.max_attempts == 3
    assert executor.base_delay_ms == 100
    assert executor.backoff_multiplier == 2.0
    assert executor.jitter_ms == 0
    assert executor.max_delay_ms == 30000

def test_from_policy_round_trips_policy(clock: ManualClock):
    policy = {
        'max_attempts': 5, 'base_delay_ms': 50, 'backoff_multiplier': 3.0,
        'jitter_ms': 10, 'max_delay_ms': 2000,
    }
    executor = RetryExecutor.from_policy(policy, clock=clock)
    assert executor.policy() == policy

# --- Delay computation ---

def test_calculate_delay_doubles_each_attempt(executor: RetryExecutor):
    assert [executor.calculate_delay(k) for k in (1, 2, 3, 4)] == [100, 200, 400, 800]

def test_calculate_delay_is_capped(clock: ManualClock):
    executor = RetryExecutor(max_attempts=3, base_delay_ms=100, backoff_multiplier=2.0, max_delay_ms=500, clock=clock)
    assert executor.calculate_delay(3) == 400
    assert executor.calculate_delay(4) == 500
    assert executor.calculate_delay(5) == 500

@pytest.mark.parametrize("attempt", range(1, 12))
def test_delay_without_jitter_matches_formula(attempt, clock: ManualClock):
    executor = RetryExecutor(base_delay_ms=25, backoff_multiplier=1.5, max_delay_ms=1000, clock=clock)
    assert executor.calculate_delay(attempt) == pytest.approx(min(25 * 1.5 ** (attempt - 1), 1000))

def test_multiplier_of_one_gives_constant_delay(clock: ManualClock):
    executor = RetryExecutor(base_delay_ms=250, backoff_multiplier=1.0, clock=clock)
    assert {executor.calculate_delay(k) for k in range(1, 6)} == {250}

@pytest.mark.parametrize("attempt", [0, -1])
def test_calculate_delay_rejects_attempt_below_one(executor: RetryExecutor, attempt):
    with pytest.raises(InvalidArgumentError, match="attempt must be at least 1"):
        executor.calculate_delay(attempt)

def test_jitter_stays_in_range_and_varies(clock: ManualClock, rng: random.Random):
    executor = RetryExecutor(base_delay_ms=100, backoff_multiplier=2.0, jitter_ms=50, clock=clock, rng=rng)
    samples = [executor.calculate_delay(2) for _ in range(200)]
    assert all(200 <= s <= 250 for s in samples)
    assert len(set(samples)) > 1

def test_jitter_is_reproducible_with_seeded_rng(clock: ManualClock):
    first = RetryExecutor(jitter_ms=40, clock=clock, rng=random.Random(7))
    second = RetryExecutor(jitter_ms=40, clock=clock, rng=random.Random(7))
    assert [first.calculate_delay(1) for _ in range(5)] == [second.calculate_delay(1) for _ in range(5)]

def test_delay_schedule_lists_each_retry(clock: ManualClock):
    executor = RetryExecutor(max_attempts=4, base_delay_ms=100, jitter_ms=20, max_delay_ms=300, clock=clock)
    schedule = executor.delay_schedule()
    assert [(e['attempt'], e['delay_ms'], e['max_with_jitter_ms']) for e in schedule] == [
        (1, 100, 120), (2, 200, 220), (3, 300, 320),
    ]
    assert executor.worst_case_delay_ms() == 660

def test_single_attempt_has_empty_schedule(clock: ManualClock):
    executor = RetryExecutor(max_attempts=1, clock=clock)
    assert executor.delay_schedule() == []
    assert executor.worst_case_delay_ms() == 0

# --- execute ---

def test_delay_saturates_at_cap_for_huge_attempts(clock: ManualClock):
    executor = RetryExecutor(max_attempts=3, base_delay_ms=100, backoff_multiplier=2.0, max_delay_ms=500, clock=clock)
    assert executor.calculate_delay(1100) == 500
    assert executor.calculate_delay(10 ** 6) == 500

def test_long_schedule_saturates_at_cap(clock: ManualClock):
    executor = RetryExecutor(max_attempts=1100, base_delay_ms=100, max_delay_ms=500, clock=clock)
    schedule = executor.delay_schedule()
    assert len(schedule) == 1099
    assert schedule[-1]['delay_ms'] == 500
    assert executor.worst_case_delay_ms() == 100 + 200 + 400 + 500 * 1096

def test_zero_base_delay_stays_zero_for_huge_attempts(clock: ManualClock):
    executor = RetryExecutor(base_delay_ms=0, backoff_multiplier=10.0, max_delay_ms=0, clock=clock)
    assert executor.calculate_delay(5000) == 0

def test_execute_keeps_retrying_past_float_range(clock: ManualClock):
    executor = RetryExecutor(max_attempts=400, base_delay_ms=1, backoff_multiplier=10.0, max_delay_ms=50, clock=clock)
    operation = failing_then("ok", [RuntimeFailure()] * 399)
    assert executor.execute(operation, {RuntimeFailure}) == "ok"
    assert operation.call_count == 400
    assert len(clock.sleeps) == 399
    assert clock.sleeps[-1] == pytest.approx(0.05)

def test_execute_success_calls_operation_once(executor: RetryExecutor, clock: ManualClock):
    operation = MagicMock(return_value="success")
    assert executor.execute(operation, {RuntimeFailure}) == "success"
    operation.assert_called_once_with()
    assert clock.sleeps == []

def test_execute_retries_until_success(executor: RetryExecutor, clock: ManualClock):
    """Two retryable failures then success uses all three attempts."""
    operation = failing_then("success", [RuntimeFailure("boom"), RuntimeFailure("boom")])
    assert executor.execute(operation, {RuntimeFailure}) == "success"
    assert operation.call_count == 3
    assert clock.sleeps == [pytest.approx(0.1), pytest.approx(0.2)]

def test_execute_propagates_non_retryable_immediately(executor: RetryExecutor, clock: ManualClock):
    operation = MagicMock(side_effect=ValidationFailure("bad input"))
    with pytest.raises(ValidationFailure, match="bad input"):
        executor.execute(operation, {RuntimeFailure})
    operation.assert_called_once()
    assert clock.sleeps == []

def test_execute_propagates_last_failure_when_exhausted(executor: RetryExecutor):
    failures = [RuntimeFailure("first"), RuntimeFailure("second"), RuntimeFailure("third")]
    operation = MagicMock(side_effect=failures)
    with pytest.raises(RuntimeFailure) as exc_info:
        executor.execute(operation, {RuntimeFailure})
    assert exc_info.value is failures[-1]
    assert operation.call_count == 3

def test_single_attempt_never_retries(clock: ManualClock):
    executor = RetryExecutor(max_attempts=1, clock=clock)
    operation = MagicMock(side_effect=RuntimeFailure())
    with pytest.raises(RuntimeFailure):
        executor.execute(operation, {RuntimeFailure})
    operation.assert_called_once()

def test_empty_retryable_set_never_retries(executor: RetryExecutor):
    operation = MagicMock(side_effect=RuntimeFailure())
    with pytest.raises(RuntimeFailure):
        executor.execute(operation, set())
    operation.assert_called_once()

def test_default_retryable_kinds_retry_any_exception(executor: RetryExecutor):
    operation = failing_then(42, [KeyError("x")])
    assert executor.execute(operation) == 42
    assert operation.call_count == 2

def test_base_exception_is_not_caught(executor: RetryExecutor):
    operation = MagicMock(side_effect=KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        executor.execute(operation)
    operation.assert_called_once()

def test_retry_by_kind_tag(executor: RetryExecutor):
    """A tag in the retryable set matches failures declaring compatibility with it."""
    operation = failing_then("ok", [RpcTimeoutError("slow"), RpcServerError("5xx", status_code=503)])
    assert executor.execute(operation, {FailureKind.TRANSIENT}) == "ok"
    assert operation.call_count == 3

def test_narrow_kind_tag_does_not_match_siblings(executor: RetryExecutor):
    operation = MagicMock(side_effect=RpcServerError("5xx", status_code=500))
    with pytest.raises(RpcServerError):
        executor.execute(operation, {FailureKind.TIMEOUT})
    operation.assert_called_once()

def test_lone_kind_tag_is_accepted(executor: RetryExecutor):
    operation = MagicMock(side_effect=[RpcTimeoutError("slow"), "ok"])
    assert executor.execute(operation, FailureKind.TIMEOUT) == "ok"
    assert operation.call_count == 2

def test_lone_kind_class_is_accepted(executor: RetryExecutor):
    operation = failing_then("ok", [RuntimeFailure()])
    assert executor.execute(operation, RuntimeFailure) == "ok"
    assert operation.call_count == 2

def test_lone_non_retryable_kind_is_accepted(executor: RetryExecutor):
    operation = MagicMock(side_effect=RpcTimeoutError("slow"))
    with pytest.raises(RpcTimeoutError):
        executor.execute(operation, FailureKind.TRANSIENT, non_retryable_kinds="timeout")
    operation.assert_called_once()

def test_validation_kind_is_not_transient(executor: RetryExecutor):
    operation = MagicMock(side_effect=RpcValidationError("missing field"))
    with pytest.raises(RpcValidationError):
        executor.execute(operation, {FailureKind.TRANSIENT})
    operation.assert_called_once()

def test_non_retryable_kinds_take_precedence(executor: RetryExecutor):
    operation = MagicMock(side_effect=RpcTimeoutError("slow"))
    with pytest.raises(RpcTimeoutError):
        executor.execute(operation, {TransientRpcError}, non_retryable_kinds={FailureKind.TIMEOUT})
    operation.assert_called_once()

def test_executor_is_reusable_across_calls(executor: RetryExecutor):
    first = failing_then("a", [RuntimeFailure()])
    second = failing_then("b", [RuntimeFailure(), RuntimeFailure()])
    assert executor.execute(first, {RuntimeFailure}) == "a"
    assert executor.execute(second, {RuntimeFailure}) == "b"
    assert first.call_count == 2
    assert second.call_count == 3

# --- Cancellation ---

def test_cancel_event_set_stops_retrying(executor: RetryExecutor, clock: ManualClock):
    cancel = threading.Event()
    cancel.set()
    failure = RuntimeFailure("boom")
    operation = MagicMock(side_effect=failure)
    with pytest.raises(OperationCancelledError) as exc_info:
        executor.execute(operation, {RuntimeFailure}, cancel_event=cancel)
    assert exc_info.value.__cause__ is failure
    operation.assert_called_once()
    assert clock.sleeps == []

def test_cancel_during_backoff_sleep(executor: RetryExecutor, clock: ManualClock, mocker):
    mocker.patch.object(clock, "sleep", return_value=True)
    operation = MagicMock(side_effect=RuntimeFailure())
    with pytest.raises(OperationCancelledError):
        executor.execute(operation, {RuntimeFailure}, cancel_event=threading.Event())
    operation.assert_called_once()

# --- Events ---

def test_events_for_retry_then_success(clock: ManualClock, events):
    executor = RetryExecutor(max_attempts=3, base_delay_ms=100, clock=clock, event_sink=events.append)
    executor.execute(failing_then("ok", [RuntimeFailure("boom")]), {RuntimeFailure})
    assert [type(e) for e in events] == [RetryScheduled, OperationSucceeded]
    assert events[0].attempt_number == 1
    assert events[0].delay_ms == 100
    assert events[0].error_type == "RuntimeFailure"
    assert events[1].attempts == 2

def test_cancelled_retry_is_not_announced(clock: ManualClock, events):
    executor = RetryExecutor(max_attempts=3, clock=clock, event_sink=events.append)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelledError):
        executor.execute(MagicMock(side_effect=RuntimeFailure()), {RuntimeFailure}, cancel_event=cancel)
    assert not any(isinstance(e, RetryScheduled) for e in events)

def test_events_for_exhausted_retries(clock: ManualClock, events):
    executor = RetryExecutor(max_attempts=2, clock=clock, event_sink=events.append)
    with pytest.raises(RuntimeFailure):
        executor.execute(MagicMock(side_effect=RuntimeFailure("down")), {RuntimeFailure})
    failed = events[-1]
    assert isinstance(failed, OperationFailed)
    assert failed.attempts == 2
    assert failed.retries_exhausted is True
    assert failed.error_message == "down"

def test_events_for_non_retryable_failure(clock: ManualClock, events):
    executor = RetryExecutor(clock=clock, event_sink=events.append)
    with pytest.raises(ValidationFailure):
        executor.execute(MagicMock(side_effect=ValidationFailure()), {RuntimeFailure})
    assert len(events) == 1
    assert events[0].retries_exhausted is False

# --- Decorator ---

def test_wrap_retries_decorated_function(executor: RetryExecutor):
    calls = []

    @executor.wrap({RuntimeFailure})
    def fetch(key, suffix=""):
        calls.append(key)
        if len(calls) < 2:
            raise RuntimeFailure()
        return key + suffix

    assert fetch("user", suffix="-1") == "user-1"
    assert calls == ["user", "user"]
    assert fetch.__name__ == "fetch"

def test_wrap_accepts_lone_kind_tag(executor: RetryExecutor):
    calls = []

    @executor.wrap("timeout")
    def fetch():
        calls.append(1)
        if len(calls) < 2:
            raise RpcTimeoutError("slow")
        return "ok"

    assert fetch() == "ok"
    assert len(calls) == 2
