"""Quota and retry policies for the deliverability core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Union

from .entities import RetryState
from .value_objects import Category, ExhaustionReason


@dataclass(frozen=True, slots=True)
class CategoryPolicy:
    """Sliding-window quota of one notification category."""

    cap: int
    window_seconds: int
    bypassable: bool = False

    @property
    def unlimited(self) -> bool:
        return self.bypassable or self.cap == -1

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


class PolicyBook:
    """Category -> CategoryPolicy lookup that refuses incomplete configuration."""

    def __init__(self, policies: Mapping[Category, CategoryPolicy]) -> None:
        missing = [c.value for c in Category if c not in policies]
        if missing:
            raise ValueError(f"Missing quota policy for categories: {missing}")
        self._policies = dict(policies)

    def __getitem__(self, category: Category) -> CategoryPolicy:
        return self._policies[category]

    @classmethod
    def from_settings(cls, limits: Mapping[str, object]) -> "PolicyBook":
        """Build from ``shared.config.CategoryLimitSettings`` keyed by category value."""
        policies: dict[Category, CategoryPolicy] = {}
        for name, cfg in limits.items():
            category = Category(name)
            policies[category] = CategoryPolicy(
                cap=getattr(cfg, "cap"),
                window_seconds=getattr(cfg, "window_seconds"),
                bypassable=getattr(cfg, "bypassable"),
            )
        return cls(policies)


# ------------------------------------------------------------------------------
# Retry decisions
# ------------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScheduleRetry:
    attempt_number: int
    delay_ms: int


@dataclass(frozen=True, slots=True)
class Exhausted:
    reason: ExhaustionReason


RetryDecision = Union[ScheduleRetry, Exhausted]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Bounded backoff for soft failures.

    A delivery that keeps failing gets at most ``max_attempts`` failures
    recorded; the failure that reaches the ceiling, or any failure past
    ``retry_window_ms`` since the first one, is terminal.
    Delays come from ``backoff_schedule_ms`` while it has entries, then keep
    doubling from its last entry (or from ``base_delay_ms`` when the table is
    empty); every delay is capped by the window.
    """

    max_attempts: int = 3
    base_delay_ms: int = 5 * 60 * 1000
    retry_window_ms: int = 24 * 60 * 60 * 1000
    grace_ms: int = 60 * 1000
    backoff_schedule_ms: tuple[int, ...] = (5 * 60 * 1000, 30 * 60 * 1000, 60 * 60 * 1000)

    @classmethod
    def from_settings(cls, retry: object) -> "RetryPolicy":
        return cls(
            max_attempts=getattr(retry, "max_attempts"),
            base_delay_ms=getattr(retry, "base_delay_ms"),
            retry_window_ms=getattr(retry, "retry_window_ms"),
            grace_ms=getattr(retry, "grace_ms"),
            backoff_schedule_ms=tuple(getattr(retry, "backoff_schedule_ms")),
        )

    def delay_for(self, failures: int) -> int:
        """Delay before the re-attempt that follows the ``failures``-th failure."""
        index = max(failures, 1) - 1
        table = self.backoff_schedule_ms
        if index < len(table):
            delay = table[index]
        elif table:
            delay = table[-1] * (2 ** (index - len(table) + 1))
        else:
            delay = self.base_delay_ms * (2 ** index)
        return min(delay, self.retry_window_ms)

    def window_expired(self, state: RetryState, now_ms: int) -> bool:
        return now_ms - state.first_attempt_at > self.retry_window_ms

    def record_failure(self, state: RetryState, now_ms: int) -> tuple[RetryState, RetryDecision]:
        failed = state.with_failure()
        if self.window_expired(state, now_ms):
            return failed, Exhausted(ExhaustionReason.WINDOW_EXPIRED)
        if failed.attempt_count >= self.max_attempts:
            return failed, Exhausted(ExhaustionReason.MAX_RETRIES)
        return failed, ScheduleRetry(
            attempt_number=failed.attempt_count,
            delay_ms=self.delay_for(failed.attempt_count),
        )

    def window_remaining_ms(self, state: RetryState, now_ms: int) -> Optional[int]:
        remaining = state.first_attempt_at + self.retry_window_ms - now_ms
        return remaining if remaining > 0 else None
