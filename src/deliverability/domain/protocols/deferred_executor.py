"""
Deferred executor protocol.
Arms in-process wake-ups for retries whose source of truth lives in the store.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol

JobCallback = Callable[[], Awaitable[None]]


class DeferredExecutor(Protocol):
    def arm(self, job_id: str, delay_ms: int, callback: JobCallback) -> None:
        """Run ``callback`` after ``delay_ms``.

        Arming an id that is already armed replaces the earlier job, so a
        job id can never fire twice.
        """
        ...

    def cancel(self, job_id: str) -> None:
        ...
