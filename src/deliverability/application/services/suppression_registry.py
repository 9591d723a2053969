"""
Suppression registry
Blocks delivery to (recipient, channel) pairs that must not be contacted
"""
from __future__ import annotations

import json
from typing import List, Mapping, Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import SuppressionEntry
from ...domain.keys import suppression_index_key, suppression_key
from ...domain.protocols.clock import Clock
from ...domain.protocols.quota_store import QuotaStore
from ...domain.value_objects import Channel, SuppressionSource, normalize_recipient

logger = get_logger(__name__)


class SuppressionRegistry:
    """
    Suppression entries keyed by (channel, recipient).

    Each entry is a JSON record whose store TTL matches its expiry; expiry is
    still re-checked on read, so an entry is never honoured past
    ``expires_at`` even if the store has not evicted it yet. A per-channel
    set indexes suppressed recipients for listing; stale index members are
    pruned lazily by ``list``.
    """

    def __init__(
        self,
        store: QuotaStore,
        clock: Clock,
        default_ttls: Optional[Mapping[str, Optional[int]]] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.default_ttls = dict(default_ttls or {})

    async def suppress(
        self,
        recipient: str,
        channel: Channel,
        reason: str,
        source: SuppressionSource,
        ttl_seconds: Optional[int] = None,
    ) -> SuppressionEntry:
        """
        Upsert a suppression entry.

        Args:
            recipient: Email address or phone number
            channel: Delivery channel the suppression applies to
            reason: Free-text reason (e.g. "hard_bounce: mailbox unavailable")
            source: What caused the suppression
            ttl_seconds: Lifetime in seconds; None means permanent

        Returns:
            The stored entry
        """
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive or None")

        recipient = normalize_recipient(recipient, channel)
        now = self.clock.now_ms()
        entry = SuppressionEntry(
            recipient=recipient,
            channel=channel,
            reason=reason,
            source=source,
            created_at=now,
            expires_at=now + ttl_seconds * 1000 if ttl_seconds is not None else None,
        )
        await self.store.set(
            suppression_key(channel, recipient),
            json.dumps(entry.to_dict()),
            ttl_ms=ttl_seconds * 1000 if ttl_seconds is not None else None,
        )
        await self.store.add_member(suppression_index_key(channel), recipient)
        logger.info(
            "Recipient suppressed",
            recipient=recipient,
            channel=channel.value,
            reason=reason,
            source=source.value,
            expires_at=entry.expires_at,
        )
        return entry

    async def suppress_with_default_ttl(
        self,
        recipient: str,
        channel: Channel,
        reason: str,
        source: SuppressionSource,
    ) -> SuppressionEntry:
        """Suppress with the configured lifetime for ``source``."""
        return await self.suppress(
            recipient, channel, reason, source, ttl_seconds=self.default_ttls.get(source.value)
        )

    async def get(self, recipient: str, channel: Channel) -> Optional[SuppressionEntry]:
        recipient = normalize_recipient(recipient, channel)
        raw = await self.store.get(suppression_key(channel, recipient))
        if raw is None:
            return None
        entry = SuppressionEntry.from_dict(json.loads(raw))
        if not entry.is_active(self.clock.now_ms()):
            return None
        return entry

    async def is_suppressed(self, recipient: str, channel: Channel) -> bool:
        return await self.get(recipient, channel) is not None

    async def lift(self, recipient: str, channel: Channel) -> bool:
        """Remove a suppression. Returns False when there was none."""
        recipient = normalize_recipient(recipient, channel)
        removed = await self.store.delete(suppression_key(channel, recipient))
        await self.store.remove_member(suppression_index_key(channel), recipient)
        if removed:
            logger.info("Suppression lifted", recipient=recipient, channel=channel.value)
        return removed

    async def list(self, channel: Channel) -> List[SuppressionEntry]:
        entries: List[SuppressionEntry] = []
        index = suppression_index_key(channel)
        for recipient in sorted(await self.store.members(index)):
            entry = await self.get(recipient, channel)
            if entry is None:
                await self.store.remove_member(index, recipient)
                continue
            entries.append(entry)
        return entries
