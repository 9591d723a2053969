"""SMS opt-out handling (STOP replies and carrier notifications)."""
from __future__ import annotations

from typing import Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import SuppressionEntry
from ...domain.value_objects import Channel, SuppressionSource
from .suppression_registry import SuppressionRegistry

logger = get_logger(__name__)

USER_OPT_OUT = "user_opt_out"
CARRIER_OPT_OUT = "carrier_opt_out"


class SmsOptOutService:
    """Opt-outs are time-boxed suppressions using the per-source default TTL."""

    def __init__(self, suppressions: SuppressionRegistry) -> None:
        self.suppressions = suppressions

    async def process_opt_out(self, phone: str) -> SuppressionEntry:
        entry = await self.suppressions.suppress_with_default_ttl(
            phone, Channel.SMS, reason=USER_OPT_OUT, source=SuppressionSource.POLICY
        )
        logger.info("SMS opt-out processed", phone=entry.recipient, expires_at=entry.expires_at)
        return entry

    async def process_carrier_opt_out(self, phone: str, carrier: Optional[str] = None) -> SuppressionEntry:
        entry = await self.suppressions.suppress_with_default_ttl(
            phone, Channel.SMS, reason=CARRIER_OPT_OUT, source=SuppressionSource.CARRIER
        )
        logger.info(
            "Carrier opt-out processed",
            phone=entry.recipient,
            carrier=carrier,
            expires_at=entry.expires_at,
        )
        return entry

    async def is_opted_out(self, phone: str) -> bool:
        entry = await self.suppressions.get(phone, Channel.SMS)
        return entry is not None and entry.reason in (USER_OPT_OUT, CARRIER_OPT_OUT)
