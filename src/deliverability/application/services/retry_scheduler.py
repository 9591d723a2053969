"""
Durable retry scheduler for soft delivery failures.

RetryState records in the store are the source of truth; the deferred
executor only holds wake-up calls. A fired job re-reads the state and acts
only if it is still the attempt the state is waiting for, so a job that was
superseded, cleared or duplicated is a no-op. ``recover()`` rebuilds the
wake-ups after a restart.
"""
from __future__ import annotations

import functools
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import RetryState
from ...domain.exceptions import DispatchFailure, StoreUnavailableError
from ...domain.keys import RETRY_PREFIX, retry_job_id, retry_key
from ...domain.policies import Exhausted, RetryDecision, RetryPolicy, ScheduleRetry
from ...domain.protocols.clock import Clock
from ...domain.protocols.deferred_executor import DeferredExecutor
from ...domain.protocols.dispatcher import Dispatcher
from ...domain.protocols.quota_store import QuotaStore
from ...domain.value_objects import Channel, ExhaustionReason, SuppressionSource, normalize_recipient
from .suppression_registry import SuppressionRegistry

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    fired: int = 0
    rearmed: int = 0
    skipped: int = 0


class RetryScheduler:
    def __init__(
        self,
        store: QuotaStore,
        suppressions: SuppressionRegistry,
        dispatcher: Dispatcher,
        executor: DeferredExecutor,
        policy: RetryPolicy,
        clock: Clock,
    ) -> None:
        self.store = store
        self.suppressions = suppressions
        self.dispatcher = dispatcher
        self.executor = executor
        self.policy = policy
        self.clock = clock

    # ---------- state access ----------

    async def get_state(
        self, recipient: str, channel: Channel, original_event_id: str
    ) -> Optional[RetryState]:
        recipient = normalize_recipient(recipient, channel)
        raw = await self.store.get(retry_key(channel, recipient, original_event_id))
        if raw is None:
            return None
        return RetryState.from_dict(json.loads(raw))

    async def clear(self, recipient: str, channel: Channel, original_event_id: str) -> bool:
        """Drop retry state and any armed wake-up for it."""
        recipient = normalize_recipient(recipient, channel)
        state = await self.get_state(recipient, channel, original_event_id)
        if state is not None and state.next_attempt_number is not None:
            self.executor.cancel(
                retry_job_id(channel, recipient, original_event_id, state.next_attempt_number)
            )
        return await self.store.delete(retry_key(channel, recipient, original_event_id))

    async def _save(self, state: RetryState, ttl_ms: int) -> None:
        await self.store.set(
            retry_key(state.channel, state.recipient, state.original_event_id),
            json.dumps(state.to_dict()),
            ttl_ms=ttl_ms,
        )

    # ---------- scheduling ----------

    async def schedule_retry(self, state: RetryState, attempt_number: int, delay_ms: int) -> bool:
        """
        Persist ``state`` armed for ``attempt_number`` and arm a wake-up.

        Re-arming an attempt that is already pending is a no-op.

        Returns:
            True if a new wake-up was armed
        """
        current = await self.get_state(state.recipient, state.channel, state.original_event_id)
        if current is not None and current.next_attempt_number == attempt_number:
            logger.debug(
                "Retry already armed",
                recipient=state.recipient,
                channel=state.channel.value,
                attempt=attempt_number,
            )
            return False

        now = self.clock.now_ms()
        armed = state.armed(attempt_number, now + delay_ms)
        await self._save(armed, ttl_ms=delay_ms + self.policy.grace_ms)

        if current is not None and current.next_attempt_number is not None:
            self.executor.cancel(
                retry_job_id(
                    state.channel, state.recipient, state.original_event_id, current.next_attempt_number
                )
            )
        self._arm(armed, delay_ms)
        logger.info(
            "Retry scheduled",
            recipient=state.recipient,
            channel=state.channel.value,
            original_event_id=state.original_event_id,
            attempt=attempt_number,
            delay_ms=delay_ms,
        )
        return True

    def _arm(self, state: RetryState, delay_ms: int) -> None:
        assert state.next_attempt_number is not None
        self.executor.arm(
            retry_job_id(state.channel, state.recipient, state.original_event_id, state.next_attempt_number),
            delay_ms,
            functools.partial(
                self._fire,
                state.recipient,
                state.channel,
                state.original_event_id,
                state.next_attempt_number,
            ),
        )

    async def record_failure(
        self,
        recipient: str,
        channel: Channel,
        original_event_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> RetryDecision:
        """
        Count one soft failure and act on the policy decision: arm the next
        attempt, or suppress the recipient for good once retries are spent.
        """
        recipient = normalize_recipient(recipient, channel)
        now = self.clock.now_ms()
        state = await self.get_state(recipient, channel, original_event_id)
        if state is None:
            state = RetryState.start(recipient, channel, original_event_id, now, payload)

        failed, decision = self.policy.record_failure(state, now)

        if isinstance(decision, Exhausted):
            await self._exhaust(recipient, channel, original_event_id, decision, failed.attempt_count)
        elif isinstance(decision, ScheduleRetry):
            await self.schedule_retry(failed, decision.attempt_number, decision.delay_ms)
        else:
            raise TypeError(f"Unexpected retry decision: {decision!r}")
        return decision

    async def _exhaust(
        self,
        recipient: str,
        channel: Channel,
        original_event_id: str,
        decision: Exhausted,
        attempts: int,
    ) -> None:
        await self.suppressions.suppress(
            recipient, channel, reason=decision.reason.value, source=SuppressionSource.BOUNCE
        )
        await self.clear(recipient, channel, original_event_id)
        logger.warning(
            "Retries exhausted; recipient suppressed",
            recipient=recipient,
            channel=channel.value,
            original_event_id=original_event_id,
            attempts=attempts,
            reason=decision.reason.value,
        )

    # ---------- execution ----------

    async def _fire(
        self, recipient: str, channel: Channel, original_event_id: str, attempt_number: int
    ) -> None:
        try:
            await self._run_attempt(recipient, channel, original_event_id, attempt_number)
        except StoreUnavailableError as e:
            # State keeps its TTL; the next recovery scan picks it up.
            logger.error(
                "Retry attempt aborted: store unavailable",
                recipient=recipient,
                channel=channel.value,
                attempt=attempt_number,
                error=str(e),
            )
        except Exception:
            logger.exception(
                "Retry attempt crashed",
                recipient=recipient,
                channel=channel.value,
                attempt=attempt_number,
            )
            await self._fail_crashed_attempt(recipient, channel, original_event_id, attempt_number)

    async def _fail_crashed_attempt(
        self, recipient: str, channel: Channel, original_event_id: str, attempt_number: int
    ) -> None:
        """Count a crashed attempt as a failure so the retry is not lost with its TTL."""
        try:
            state = await self.get_state(recipient, channel, original_event_id)
            if state is None or state.next_attempt_number != attempt_number:
                return
            await self.record_failure(recipient, channel, original_event_id, state.payload)
        except StoreUnavailableError as e:
            logger.error(
                "Crashed retry attempt not recorded: store unavailable",
                recipient=recipient,
                channel=channel.value,
                attempt=attempt_number,
                error=str(e),
            )

    async def _run_attempt(
        self, recipient: str, channel: Channel, original_event_id: str, attempt_number: int
    ) -> None:
        state = await self.get_state(recipient, channel, original_event_id)
        if state is None or state.next_attempt_number != attempt_number:
            logger.debug(
                "Retry superseded",
                recipient=recipient,
                channel=channel.value,
                attempt=attempt_number,
            )
            return

        if await self.suppressions.is_suppressed(recipient, channel):
            await self.store.delete(retry_key(channel, recipient, original_event_id))
            logger.info("Retry dropped: recipient suppressed", recipient=recipient, channel=channel.value)
            return

        try:
            await self.dispatcher.dispatch(recipient, channel, dict(state.payload))
        except DispatchFailure as e:
            logger.warning(
                "Retry attempt failed",
                recipient=recipient,
                channel=channel.value,
                attempt=attempt_number,
                retryable=e.retryable,
                error=str(e),
            )
            if e.retryable:
                await self.record_failure(recipient, channel, original_event_id, state.payload)
            else:
                await self._exhaust(
                    recipient,
                    channel,
                    original_event_id,
                    Exhausted(ExhaustionReason.PROVIDER_REJECTED),
                    state.attempt_count + 1,
                )
            return

        now = self.clock.now_ms()
        remaining = self.policy.window_remaining_ms(state, now)
        if remaining is None:
            await self.store.delete(retry_key(channel, recipient, original_event_id))
        else:
            # Keep the failure count so a later soft bounce continues it.
            await self._save(state.disarmed(), ttl_ms=remaining)
        logger.info(
            "Retry attempt dispatched",
            recipient=recipient,
            channel=channel.value,
            original_event_id=original_event_id,
            attempt=attempt_number,
        )

    async def recover(self) -> RecoveryResult:
        """
        Rebuild wake-ups from persisted state.

        Overdue attempts run immediately; future ones are re-armed.
        """
        fired = rearmed = skipped = 0
        now = self.clock.now_ms()
        for key in await self.store.scan(RETRY_PREFIX):
            raw = await self.store.get(key)
            if raw is None:
                continue
            try:
                state = RetryState.from_dict(json.loads(raw))
            except (ValueError, KeyError) as e:
                logger.warning("Unreadable retry state skipped", key=key, error=str(e))
                skipped += 1
                continue

            if state.next_attempt_number is None or state.next_attempt_at is None:
                skipped += 1
                continue

            delay = state.next_attempt_at - now
            if delay <= 0:
                await self._fire(
                    state.recipient, state.channel, state.original_event_id, state.next_attempt_number
                )
                fired += 1
            else:
                self._arm(state, delay)
                rearmed += 1

        result = RecoveryResult(fired=fired, rearmed=rearmed, skipped=skipped)
        logger.info("Retry recovery complete", fired=fired, rearmed=rearmed, skipped=skipped)
        return result
