"""
Sliding-window rate limiter
Per (subject, category) admission control backed by the quota store
"""
from __future__ import annotations

import uuid
from typing import Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import RateLimitStatus, WindowResult
from ...domain.exceptions import QuotaUnavailable, StoreUnavailableError
from ...domain.keys import quota_key
from ...domain.policies import CategoryPolicy, PolicyBook
from ...domain.protocols.clock import Clock
from ...domain.protocols.quota_store import QuotaStore
from ...domain.value_objects import Category

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Each capped (subject, category) pair owns a window of event timestamps
    covering the trailing ``window_seconds``. The prune/count/insert step is
    one atomic store round trip, so concurrent callers can never both take
    the last unit of a quota.

    Bypassable (and cap -1) categories never touch the store: they are
    admitted even when the store is down. Capped categories fail closed with
    QuotaUnavailable.
    """

    def __init__(self, store: QuotaStore, policies: PolicyBook, clock: Clock) -> None:
        self.store = store
        self.policies = policies
        self.clock = clock

    async def check_and_consume(self, subject_id: str, category: Category) -> RateLimitStatus:
        """
        Admit one event for ``subject_id`` in ``category`` if quota remains.

        Returns:
            RateLimitStatus; on admission ``remaining`` is what is left after
            this event, on rejection it is 0 and ``reset_at`` is when the
            oldest retained event leaves the window.

        Raises:
            QuotaUnavailable: If the store is unreachable (capped categories)
        """
        policy = self.policies[category]
        if policy.unlimited:
            return RateLimitStatus.unbounded()

        now = self.clock.now_ms()
        member = f"{now}-{uuid.uuid4().hex}"
        result = await self._call_store(
            subject_id,
            category,
            lambda: self.store.window_consume(
                quota_key(subject_id, category), now, policy.window_ms, policy.cap, member
            ),
        )

        if not result.admitted:
            status = RateLimitStatus(
                allowed=False,
                limit=policy.cap,
                remaining=0,
                reset_at=self._reset_at(result, policy, now),
            )
            logger.warning(
                "Rate limit exceeded",
                subject_id=subject_id,
                category=category.value,
                category_kind=category.kind.value,
                count=result.count,
                limit=policy.cap,
                reset_at=status.reset_at,
            )
            return status

        return RateLimitStatus(
            allowed=True,
            limit=policy.cap,
            remaining=max(0, policy.cap - result.count - 1),
            reset_at=self._reset_at(result, policy, now),
        )

    async def peek(self, subject_id: str, category: Category) -> RateLimitStatus:
        """Quota snapshot without consuming (status queries)."""
        policy = self.policies[category]
        if policy.unlimited:
            return RateLimitStatus.unbounded()

        now = self.clock.now_ms()
        result = await self._call_store(
            subject_id,
            category,
            lambda: self.store.window_peek(quota_key(subject_id, category), now, policy.window_ms),
        )
        return RateLimitStatus(
            allowed=result.count < policy.cap,
            limit=policy.cap,
            remaining=max(0, policy.cap - result.count),
            reset_at=self._reset_at(result, policy, now) if result.count else None,
        )

    @staticmethod
    def _reset_at(result: WindowResult, policy: CategoryPolicy, now: int) -> int:
        oldest: Optional[int] = result.oldest_ms
        return (oldest if oldest is not None else now) + policy.window_ms

    async def _call_store(self, subject_id: str, category: Category, op):
        try:
            return await op()
        except StoreUnavailableError as e:
            logger.error(
                "Quota store unavailable",
                subject_id=subject_id,
                category=category.value,
                category_kind=category.kind.value,
                error=str(e),
            )
            raise QuotaUnavailable(
                "Quota store unavailable",
                details={"subjectId": subject_id, "category": category.value},
            ) from e
