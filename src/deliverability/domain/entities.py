# src/deliverability/domain/entities.py
"""Records owned by the deliverability core.

Everything persisted goes through ``to_dict``/``from_dict`` so the store
adapters only ever see JSON-compatible dicts.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .value_objects import BounceSeverity, Channel, SuppressionSource

UNBOUNDED = -1


@dataclass(frozen=True, slots=True)
class WindowResult:
    """Outcome of one atomic sliding-window round trip against the store."""
    admitted: bool
    count: int  # retained entries before any insert
    oldest_ms: Optional[int] = None  # oldest retained entry after the operation


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Admission decision / quota snapshot for one (subject, category)."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: Optional[int]  # epoch-ms; None when the window is empty

    @classmethod
    def unbounded(cls) -> "RateLimitStatus":
        return cls(allowed=True, limit=UNBOUNDED, remaining=UNBOUNDED, reset_at=None)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetAt": self.reset_at,
        }


@dataclass(frozen=True, slots=True)
class AbuseRecord:
    subject_id: str
    category: str
    attempt_count: int
    timestamp: int  # epoch-ms
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "category": self.category,
            "attempt_count": self.attempt_count,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AbuseRecord":
        return cls(
            subject_id=data["subject_id"],
            category=data["category"],
            attempt_count=int(data["attempt_count"]),
            timestamp=int(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True, slots=True)
class SuppressionEntry:
    recipient: str
    channel: Channel
    reason: str
    source: SuppressionSource
    created_at: int  # epoch-ms
    expires_at: Optional[int] = None  # epoch-ms; None = permanent

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None

    def is_active(self, now_ms: int) -> bool:
        return self.expires_at is None or now_ms < self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "channel": self.channel.value,
            "reason": self.reason,
            "source": self.source.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SuppressionEntry":
        expires_at = data.get("expires_at")
        return cls(
            recipient=data["recipient"],
            channel=Channel(data["channel"]),
            reason=data["reason"],
            source=SuppressionSource(data["source"]),
            created_at=int(data["created_at"]),
            expires_at=int(expires_at) if expires_at is not None else None,
        )


@dataclass(frozen=True, slots=True)
class RetryState:
    """
    Retry bookkeeping for one (recipient, channel, original event).

    attempt_count counts failed deliveries observed so far and only grows.
    next_attempt_number/next_attempt_at are set while a re-attempt is armed
    and cleared once it has been dispatched.
    """
    recipient: str
    channel: Channel
    original_event_id: str
    attempt_count: int
    first_attempt_at: int  # epoch-ms
    next_attempt_at: Optional[int] = None
    next_attempt_number: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def start(
        cls,
        recipient: str,
        channel: Channel,
        original_event_id: str,
        now_ms: int,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "RetryState":
        return cls(
            recipient=recipient,
            channel=channel,
            original_event_id=original_event_id,
            attempt_count=0,
            first_attempt_at=now_ms,
            payload=dict(payload or {}),
        )

    @property
    def is_pending(self) -> bool:
        return self.next_attempt_number is not None

    def with_failure(self) -> "RetryState":
        return replace(self, attempt_count=self.attempt_count + 1)

    def armed(self, attempt_number: int, at_ms: int) -> "RetryState":
        return replace(self, next_attempt_number=attempt_number, next_attempt_at=at_ms)

    def disarmed(self) -> "RetryState":
        return replace(self, next_attempt_number=None, next_attempt_at=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "channel": self.channel.value,
            "original_event_id": self.original_event_id,
            "attempt_count": self.attempt_count,
            "first_attempt_at": self.first_attempt_at,
            "next_attempt_at": self.next_attempt_at,
            "next_attempt_number": self.next_attempt_number,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryState":
        next_at = data.get("next_attempt_at")
        next_number = data.get("next_attempt_number")
        return cls(
            recipient=data["recipient"],
            channel=Channel(data["channel"]),
            original_event_id=data["original_event_id"],
            attempt_count=int(data["attempt_count"]),
            first_attempt_at=int(data["first_attempt_at"]),
            next_attempt_at=int(next_at) if next_at is not None else None,
            next_attempt_number=int(next_number) if next_number is not None else None,
            payload=dict(data.get("payload") or {}),
        )


@dataclass(frozen=True, slots=True)
class BounceEvent:
    """Inbound bounce notification (not persisted)."""
    recipient: str
    channel: Channel
    timestamp: int  # epoch-seconds, as reported by the provider
    severity: BounceSeverity
    reason: Optional[str] = None
    message_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def original_event_id(self) -> str:
        return self.message_id or "default"


@dataclass(frozen=True, slots=True)
class DeliveryReceipt:
    recipient: str
    channel: Channel
    category: str
    rate_limit: RateLimitStatus
    provider_message_id: Optional[str] = None
