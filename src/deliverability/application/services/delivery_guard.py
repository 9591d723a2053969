"""
Delivery guard
Send path: suppression check, quota admission, then provider dispatch
"""
from __future__ import annotations

import math
from typing import Any, Dict, Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import DeliveryReceipt, RateLimitStatus
from ...domain.exceptions import (
    DispatchFailure,
    ProviderRejectedError,
    QuotaExceededError,
    RecipientSuppressedError,
    StoreUnavailableError,
)
from ...domain.protocols.clock import Clock
from ...domain.protocols.dispatcher import Dispatcher
from ...domain.value_objects import Category, Channel, normalize_recipient
from .abuse_tracker import AbuseTracker
from .rate_limiter import RateLimiter
from .suppression_registry import SuppressionRegistry

logger = get_logger(__name__)


class DeliveryGuard:
    def __init__(
        self,
        limiter: RateLimiter,
        suppressions: SuppressionRegistry,
        abuse: AbuseTracker,
        dispatcher: Dispatcher,
        clock: Clock,
    ) -> None:
        self.limiter = limiter
        self.suppressions = suppressions
        self.abuse = abuse
        self.dispatcher = dispatcher
        self.clock = clock

    async def send(
        self,
        subject_id: str,
        recipient: str,
        channel: Channel,
        category: Category,
        payload: Optional[Dict[str, Any]] = None,
    ) -> DeliveryReceipt:
        """
        Deliver one message if policy allows it.

        Suppression is checked before the quota so a blocked recipient never
        consumes quota.

        Raises:
            RecipientSuppressedError: Recipient is suppressed on ``channel``
            QuotaExceededError: Subject exhausted its ``category`` quota
            QuotaUnavailable: Quota store unreachable (capped categories)
            ProviderRejectedError: Provider refused the message
        """
        recipient = normalize_recipient(recipient, channel)
        entry = await self.suppressions.get(recipient, channel)
        if entry is not None:
            logger.info(
                "Send blocked: recipient suppressed",
                subject_id=subject_id,
                recipient=recipient,
                channel=channel.value,
                reason=entry.reason,
            )
            raise RecipientSuppressedError(
                "Recipient is suppressed",
                details={
                    "recipient": recipient,
                    "channel": channel.value,
                    "reason": entry.reason,
                    "source": entry.source.value,
                    "expiresAt": entry.expires_at,
                },
            )

        status = await self.limiter.check_and_consume(subject_id, category)
        if not status.allowed:
            await self._record_abuse(subject_id, category, recipient, channel, status)
            raise QuotaExceededError(
                subject_id, category.value, status, retry_after=self._retry_after(status)
            )

        try:
            provider_message_id = await self.dispatcher.dispatch(recipient, channel, dict(payload or {}))
        except DispatchFailure as e:
            logger.warning(
                "Provider rejected message",
                subject_id=subject_id,
                recipient=recipient,
                channel=channel.value,
                error=str(e),
                retryable=e.retryable,
            )
            raise ProviderRejectedError(
                f"Provider rejected message: {e}",
                details={"retryable": e.retryable, **e.details},
            ) from e

        return DeliveryReceipt(
            recipient=recipient,
            channel=channel,
            category=category.value,
            rate_limit=status,
            provider_message_id=provider_message_id,
        )

    async def status(self, subject_id: str, category: Category) -> RateLimitStatus:
        return await self.limiter.peek(subject_id, category)

    def _retry_after(self, status: RateLimitStatus) -> Optional[int]:
        if status.reset_at is None:
            return None
        return max(1, math.ceil((status.reset_at - self.clock.now_ms()) / 1000))

    async def _record_abuse(
        self,
        subject_id: str,
        category: Category,
        recipient: str,
        channel: Channel,
        status: RateLimitStatus,
    ) -> None:
        try:
            previous = await self.abuse.list(subject_id, category)
            await self.abuse.record(
                subject_id,
                category,
                attempt_count=len(previous) + 1,
                metadata={
                    "recipient": recipient,
                    "channel": channel.value,
                    "limit": status.limit,
                    "resetAt": status.reset_at,
                },
            )
        except StoreUnavailableError as e:
            logger.error("Failed to record abuse attempt", subject_id=subject_id, category=category.value, error=str(e))
