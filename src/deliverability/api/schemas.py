from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..domain.entities import DeliveryReceipt, RateLimitStatus, SuppressionEntry
from ..domain.value_objects import Category, Channel, SuppressionSource


class RateLimitResponse(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_at: Optional[int] = Field(None, alias="resetAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_status(cls, status: RateLimitStatus) -> "RateLimitResponse":
        return cls(allowed=status.allowed, limit=status.limit, remaining=status.remaining, reset_at=status.reset_at)


class BatchResultResponse(BaseModel):
    received: int
    processed: int
    duplicates: int
    invalid: int
    failed: int


class SuppressionCreate(BaseModel):
    recipient: str = Field(..., min_length=1)
    channel: Channel
    reason: str = Field("manual", min_length=1)
    source: SuppressionSource = SuppressionSource.MANUAL
    ttl_seconds: Optional[int] = Field(None, alias="ttlSeconds", gt=0)

    model_config = ConfigDict(populate_by_name=True)


class SuppressionResponse(BaseModel):
    recipient: str
    channel: Channel
    reason: str
    source: SuppressionSource
    created_at: int = Field(..., alias="createdAt")
    expires_at: Optional[int] = Field(None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entry(cls, entry: SuppressionEntry) -> "SuppressionResponse":
        return cls(
            recipient=entry.recipient,
            channel=entry.channel,
            reason=entry.reason,
            source=entry.source,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
        )


class OptOutRequest(BaseModel):
    phone: str = Field(..., min_length=3)
    carrier: Optional[str] = None


class DeliveryRequest(BaseModel):
    subject_id: str = Field(..., alias="subjectId", min_length=1)
    recipient: str = Field(..., min_length=1)
    channel: Channel
    category: Category
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class DeliveryResponse(BaseModel):
    recipient: str
    channel: Channel
    category: str
    provider_message_id: Optional[str] = Field(None, alias="providerMessageId")
    rate_limit: RateLimitResponse = Field(..., alias="rateLimit")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_receipt(cls, receipt: DeliveryReceipt) -> "DeliveryResponse":
        return cls(
            recipient=receipt.recipient,
            channel=receipt.channel,
            category=receipt.category,
            provider_message_id=receipt.provider_message_id,
            rate_limit=RateLimitResponse.from_status(receipt.rate_limit),
        )
