"""
Webhook Service
Validates, deduplicates and routes provider failure-event batches
"""
from __future__ import annotations

import asyncio
import hmac
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import BounceEvent
from ...domain.exceptions import DuplicateEvent
from ...domain.keys import event_dedup_key
from ...domain.protocols.quota_store import QuotaStore
from ...domain.value_objects import BounceSeverity, Channel, EventKind, normalize_recipient
from ..dto import BatchResult, ProviderEvent
from .bounce_classifier import BounceClassifier

logger = get_logger(__name__)

_PROCESSED = "processed"
_DUPLICATE = "duplicate"
_FAILED = "failed"


class WebhookService:
    """
    Entry point for provider failure webhooks.

    Events for the same (channel, recipient) are applied one after another
    in arrival order; different recipients run concurrently. A failure in
    one event never affects the others in the batch.
    """

    def __init__(
        self,
        classifier: BounceClassifier,
        store: QuotaStore,
        secret: Optional[str],
        dedup_ttl_seconds: int = 24 * 60 * 60,
    ) -> None:
        self.classifier = classifier
        self.store = store
        self.secret = secret
        self.dedup_ttl_seconds = dedup_ttl_seconds

    def verify_token(self, token: Optional[str]) -> bool:
        """Constant-time check of the shared webhook secret."""
        if not self.secret or not token:
            return False
        return hmac.compare_digest(token.encode("utf-8"), self.secret.encode("utf-8"))

    async def process_batch(self, raw_events: Iterable[Any]) -> BatchResult:
        raw_list = list(raw_events)
        events: List[ProviderEvent] = []
        invalid = 0
        for index, raw in enumerate(raw_list):
            try:
                events.append(ProviderEvent.model_validate(raw))
            except PydanticValidationError as e:
                invalid += 1
                logger.warning(
                    "Malformed webhook event dropped",
                    index=index,
                    errors=e.errors(include_url=False, include_context=False),
                )

        groups: Dict[Tuple[Channel, str], List[ProviderEvent]] = defaultdict(list)
        for event in events:
            channel = event.resolved_channel
            groups[(channel, normalize_recipient(event.recipient_address, channel))].append(event)

        outcomes = await asyncio.gather(
            *(self._process_group(group) for group in groups.values()),
            return_exceptions=True,
        )

        processed = duplicates = failed = 0
        for group, outcome in zip(groups.values(), outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Webhook event group failed", error=str(outcome), events=len(group))
                failed += len(group)
                continue
            processed += outcome.count(_PROCESSED)
            duplicates += outcome.count(_DUPLICATE)
            failed += outcome.count(_FAILED)

        result = BatchResult(
            received=len(raw_list),
            processed=processed,
            duplicates=duplicates,
            invalid=invalid,
            failed=failed,
        )
        logger.info("Webhook batch processed", **result.as_dict())
        return result

    async def _process_group(self, group: List[ProviderEvent]) -> List[str]:
        outcomes: List[str] = []
        for event in group:
            try:
                await self.process_event(event)
                outcomes.append(_PROCESSED)
            except DuplicateEvent:
                outcomes.append(_DUPLICATE)
            except Exception as e:
                logger.error(
                    "Failed to process webhook event",
                    event_id=event.identity,
                    event_kind=event.event_kind.value,
                    error=str(e),
                )
                outcomes.append(_FAILED)
        return outcomes

    async def process_event(self, event: ProviderEvent) -> None:
        """
        Apply one validated event.

        Raises:
            DuplicateEvent: If the event identity was already seen
        """
        dedup_key = event_dedup_key(event.identity)
        marked = await self.store.set(
            dedup_key, "1", ttl_ms=self.dedup_ttl_seconds * 1000, only_if_absent=True
        )
        if not marked:
            logger.info("Duplicate webhook event ignored", event_id=event.identity)
            raise DuplicateEvent(f"Event {event.identity} already processed")

        try:
            await self._route(event)
        except Exception:
            # Let a provider redelivery try again.
            await self.store.delete(dedup_key)
            raise

    async def _route(self, event: ProviderEvent) -> None:
        channel = event.resolved_channel
        kind = event.event_kind

        if kind is EventKind.BOUNCE:
            severity = event.bounce_severity
            if severity is None:
                logger.warning(
                    "Bounce without severity treated as hard",
                    recipient=event.recipient_address,
                    event_id=event.identity,
                )
                severity = BounceSeverity.HARD
            payload = event.extra_payload()
            if event.message_id:
                payload.setdefault("messageId", event.message_id)
            await self.classifier.handle(
                BounceEvent(
                    recipient=event.recipient_address,
                    channel=channel,
                    timestamp=event.timestamp,
                    severity=severity,
                    reason=event.reason,
                    message_id=event.message_id,
                    payload=payload,
                )
            )
        elif kind is EventKind.SPAM_REPORT:
            await self.classifier.handle_spam_report(event.recipient_address, channel, event.reason)
        elif kind is EventKind.BLOCKED:
            await self.classifier.handle_blocked(event.recipient_address, channel, event.reason)
        elif kind is EventKind.DELIVERED:
            await self.classifier.handle_delivered(event.recipient_address, channel, event.message_id)
        else:
            raise ValueError(f"Unhandled event kind: {kind!r}")
