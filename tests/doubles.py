"""Test doubles for the deliverability core: fake clock, manual executor, recording dispatcher."""
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

from deliverability.domain.exceptions import DispatchFailure
from deliverability.domain.protocols.deferred_executor import JobCallback
from deliverability.domain.protocols.dispatcher import Dispatcher
from deliverability.domain.value_objects import Channel

T0 = 1_700_000_000_000  # epoch-ms


class FakeClock:
    def __init__(self, now_ms: int = T0):
        self.now = now_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, *, seconds: float = 0, ms: int = 0) -> None:
        self.now += int(seconds * 1000) + ms


class ManualExecutor:
    """Deferred executor driven by the fake clock: jobs run only via run_due()."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.jobs: Dict[str, Tuple[int, JobCallback]] = {}
        self.armed: List[Tuple[str, int]] = []  # (job_id, delay_ms) history

    def arm(self, job_id: str, delay_ms: int, callback: JobCallback) -> None:
        self.jobs[job_id] = (self.clock.now_ms() + delay_ms, callback)
        self.armed.append((job_id, delay_ms))

    def cancel(self, job_id: str) -> None:
        self.jobs.pop(job_id, None)

    def next_due(self) -> Optional[int]:
        return min((due for due, _ in self.jobs.values()), default=None)

    async def run_due(self) -> int:
        ran = 0
        while True:
            due = [(at, job_id) for job_id, (at, _) in self.jobs.items() if at <= self.clock.now_ms()]
            if not due:
                return ran
            _, job_id = min(due)
            _, callback = self.jobs.pop(job_id)
            await callback()
            ran += 1


class RecordingDispatcher(Dispatcher):
    def __init__(self):
        self.calls: List[Tuple[str, Channel, Dict[str, Any]]] = []
        self._failures: List[Exception] = []

    def fail_next(self, times: int = 1, retryable: bool = True) -> None:
        self._failures.extend(DispatchFailure("provider down", retryable=retryable) for _ in range(times))

    def crash_next(self) -> None:
        self._failures.append(RuntimeError("connection pool closed"))

    async def dispatch(self, recipient: str, channel: Channel, payload: Dict[str, Any]) -> Optional[str]:
        self.calls.append((recipient, channel, payload))
        if self._failures:
            raise self._failures.pop(0)
        return f"msg-{len(self.calls)}"

    async def aclose(self) -> None:
        return None


WEBHOOK_SECRET = "test-webhook-secret"


def require_test_redis() -> str:
    url = os.getenv("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set; skipping Redis-dependent tests")
    return url
