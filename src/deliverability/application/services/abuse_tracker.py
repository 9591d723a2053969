"""Audit trail of rejected send attempts."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from shared.infrastructure.observability.logger import get_logger

from ...domain.entities import AbuseRecord
from ...domain.keys import abuse_key
from ...domain.protocols.clock import Clock
from ...domain.protocols.quota_store import QuotaStore
from ...domain.value_objects import Category

logger = get_logger(__name__)

ABUSE_TTL_SECONDS = 24 * 60 * 60


class AbuseTracker:
    """
    Keeps a 24h, most-recent-first list of rejected attempts per
    (subject, category). Observational only: nothing here decides admission.
    """

    def __init__(self, store: QuotaStore, clock: Clock, ttl_seconds: int = ABUSE_TTL_SECONDS) -> None:
        self.store = store
        self.clock = clock
        self.ttl_seconds = ttl_seconds

    async def record(
        self,
        subject_id: str,
        category: Category,
        attempt_count: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AbuseRecord:
        entry = AbuseRecord(
            subject_id=subject_id,
            category=category.value,
            attempt_count=attempt_count,
            timestamp=self.clock.now_ms(),
            metadata=dict(metadata or {}),
        )
        key = abuse_key(subject_id, category)
        await self.store.push(key, json.dumps(entry.to_dict()))
        await self.store.expire(key, self.ttl_seconds)
        logger.info(
            "Abuse attempt recorded",
            subject_id=subject_id,
            category=category.value,
            attempt_count=attempt_count,
        )
        return entry

    async def list(self, subject_id: str, category: Category) -> List[AbuseRecord]:
        raw = await self.store.range(abuse_key(subject_id, category))
        return [AbuseRecord.from_dict(json.loads(item)) for item in raw]
