from deliverability.domain.entities import RetryState
from deliverability.domain.policies import Exhausted, RetryPolicy, ScheduleRetry
from deliverability.domain.value_objects import Channel, ExhaustionReason

MINUTE = 60 * 1000


def fresh(now=0) -> RetryState:
    return RetryState.start("a@example.com", Channel.EMAIL, "m-1", now)


def test_table_delays_then_doubling():
    policy = RetryPolicy(max_attempts=10)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [5 * MINUTE, 30 * MINUTE, 60 * MINUTE]
    assert policy.delay_for(4) == 120 * MINUTE


def test_delays_strictly_increase_and_are_capped_by_window():
    policy = RetryPolicy(max_attempts=20, retry_window_ms=6 * 60 * MINUTE)
    delays = [policy.delay_for(n) for n in range(1, 8)]
    capped = [d for d in delays if d < policy.retry_window_ms]
    assert capped == sorted(set(capped))
    assert max(delays) == policy.retry_window_ms


def test_without_table_falls_back_to_exponential():
    policy = RetryPolicy(backoff_schedule_ms=())
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [5 * MINUTE, 10 * MINUTE, 20 * MINUTE]


def test_third_failure_is_terminal():
    policy = RetryPolicy()
    state = fresh()

    state, first = policy.record_failure(state, 0)
    assert first == ScheduleRetry(attempt_number=1, delay_ms=5 * MINUTE)
    state, second = policy.record_failure(state, 5 * MINUTE)
    assert second == ScheduleRetry(attempt_number=2, delay_ms=30 * MINUTE)
    state, third = policy.record_failure(state, 35 * MINUTE)
    assert third == Exhausted(ExhaustionReason.MAX_RETRIES)
    assert state.attempt_count == 3


def test_failure_after_window_is_terminal():
    policy = RetryPolicy()
    state, _ = policy.record_failure(fresh(), 0)
    _, decision = policy.record_failure(state, policy.retry_window_ms + 1)
    assert decision == Exhausted(ExhaustionReason.WINDOW_EXPIRED)


def test_window_remaining():
    policy = RetryPolicy()
    state = fresh(now=1000)
    assert policy.window_remaining_ms(state, 1000) == policy.retry_window_ms
    assert policy.window_remaining_ms(state, 1000 + policy.retry_window_ms) is None
