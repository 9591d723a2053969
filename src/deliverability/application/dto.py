"""
Webhook DTOs
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.value_objects import BounceSeverity, Channel, EventKind


class ProviderEvent(BaseModel):
    """One entry of a provider failure-webhook batch."""

    recipient_address: str = Field(..., alias="recipientAddress", min_length=1)
    timestamp: int = Field(..., ge=0)  # epoch-seconds
    event_kind: EventKind = Field(..., alias="eventKind")
    bounce_severity: Optional[BounceSeverity] = Field(None, alias="bounceSeverity")
    reason: Optional[str] = None
    channel: Optional[Channel] = None
    event_id: Optional[str] = Field(None, alias="eventId")
    message_id: Optional[str] = Field(None, alias="messageId")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("recipient_address")
    @classmethod
    def _strip_recipient(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("recipientAddress must not be blank")
        return v

    @property
    def resolved_channel(self) -> Channel:
        return self.channel or Channel.EMAIL

    @property
    def identity(self) -> str:
        """Provider event id, or a digest of the fields that make an event unique."""
        if self.event_id:
            return self.event_id
        material = json.dumps(
            [
                self.resolved_channel.value,
                self.recipient_address.lower(),
                self.timestamp,
                self.event_kind.value,
                self.bounce_severity.value if self.bounce_severity else None,
                self.message_id,
                self.reason,
            ]
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def extra_payload(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


@dataclass(frozen=True)
class BatchResult:
    received: int = 0
    processed: int = 0
    duplicates: int = 0
    invalid: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "received": self.received,
            "processed": self.processed,
            "duplicates": self.duplicates,
            "invalid": self.invalid,
            "failed": self.failed,
        }
