"""
Bounce classifier
Routes provider failure events to suppression or retry
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import BounceEvent
from ...domain.policies import Exhausted, RetryDecision
from ...domain.value_objects import BounceSeverity, Channel, SuppressionSource, normalize_recipient
from .retry_scheduler import RetryScheduler
from .suppression_registry import SuppressionRegistry

logger = get_logger(__name__)


class BounceOutcome(str, Enum):
    IGNORED = "ignored"
    SUPPRESSED = "suppressed"
    RETRY_SCHEDULED = "retry_scheduled"
    CLEARED = "cleared"
    LOGGED = "logged"


class BounceClassifier:
    """
    Classifies inbound failure events.

    A permanent suppression on the event's channel makes every later event a
    no-op (soft after hard). A temporary one, such as an opt-out, still
    yields to a hard bounce or spam report, which write the permanent entry
    over it. Soft bounces are ignored under any active suppression.
    """

    def __init__(self, suppressions: SuppressionRegistry, retries: RetryScheduler) -> None:
        self.suppressions = suppressions
        self.retries = retries

    async def handle(self, event: BounceEvent) -> BounceOutcome:
        recipient = normalize_recipient(event.recipient, event.channel)
        existing = await self.suppressions.get(recipient, event.channel)
        if existing is not None and (existing.is_permanent or event.severity is BounceSeverity.SOFT):
            logger.debug(
                "Bounce ignored: already suppressed",
                recipient=recipient,
                channel=event.channel.value,
                existing_source=existing.source.value,
            )
            return BounceOutcome.IGNORED

        if event.severity is BounceSeverity.HARD:
            await self.suppressions.suppress(
                recipient,
                event.channel,
                reason=f"hard_bounce: {event.reason or 'unspecified'}",
                source=SuppressionSource.BOUNCE,
            )
            await self.retries.clear(recipient, event.channel, event.original_event_id)
            logger.warning(
                "Hard bounce; recipient suppressed",
                recipient=recipient,
                channel=event.channel.value,
                reason=event.reason,
            )
            return BounceOutcome.SUPPRESSED

        if event.severity is BounceSeverity.SOFT:
            decision: RetryDecision = await self.retries.record_failure(
                recipient, event.channel, event.original_event_id, event.payload
            )
            logger.info(
                "Soft bounce classified",
                recipient=recipient,
                channel=event.channel.value,
                decision=type(decision).__name__,
            )
            if isinstance(decision, Exhausted):
                return BounceOutcome.SUPPRESSED
            return BounceOutcome.RETRY_SCHEDULED

        raise ValueError(f"Unknown bounce severity: {event.severity!r}")

    async def handle_spam_report(
        self, recipient: str, channel: Channel, reason: Optional[str] = None
    ) -> BounceOutcome:
        recipient = normalize_recipient(recipient, channel)
        existing = await self.suppressions.get(recipient, channel)
        if existing is not None and existing.is_permanent:
            return BounceOutcome.IGNORED
        await self.suppressions.suppress(
            recipient, channel, reason="spam_report", source=SuppressionSource.SPAM
        )
        logger.warning("Spam report; recipient suppressed", recipient=recipient, channel=channel.value, detail=reason)
        return BounceOutcome.SUPPRESSED

    async def handle_blocked(
        self, recipient: str, channel: Channel, reason: Optional[str] = None
    ) -> BounceOutcome:
        # Blocks are usually provider-side reputation issues, not recipient state.
        logger.warning(
            "Delivery blocked by provider",
            recipient=normalize_recipient(recipient, channel),
            channel=channel.value,
            reason=reason,
        )
        return BounceOutcome.LOGGED

    async def handle_delivered(
        self, recipient: str, channel: Channel, message_id: Optional[str] = None
    ) -> BounceOutcome:
        cleared = await self.retries.clear(recipient, channel, message_id or "default")
        if cleared:
            logger.info("Delivery confirmed; retry state cleared", recipient=recipient, channel=channel.value)
            return BounceOutcome.CLEARED
        return BounceOutcome.IGNORED
