"""Closed value sets used across the deliverability domain."""

from __future__ import annotations

from enum import Enum


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class CategoryKind(str, Enum):
    """Quota behaviour class of a notification category."""

    URGENT_TRANSACTIONAL = "urgent_transactional"
    HIGH_FREQUENCY_ALERT = "high_frequency_alert"
    BROADCAST = "broadcast"


class Category(str, Enum):
    BID_ALERT = "bidAlert"
    MARKETING = "marketing"
    TWO_FACTOR = "2fa"
    PURCHASE = "purchase"

    @property
    def kind(self) -> CategoryKind:
        return _CATEGORY_KINDS[self]


_CATEGORY_KINDS: dict[Category, CategoryKind] = {
    Category.BID_ALERT: CategoryKind.HIGH_FREQUENCY_ALERT,
    Category.MARKETING: CategoryKind.BROADCAST,
    Category.TWO_FACTOR: CategoryKind.URGENT_TRANSACTIONAL,
    Category.PURCHASE: CategoryKind.URGENT_TRANSACTIONAL,
}


class SuppressionSource(str, Enum):
    POLICY = "policy"
    BOUNCE = "bounce"
    SPAM = "spam"
    MANUAL = "manual"
    CARRIER = "carrier"


class EventKind(str, Enum):
    """Provider webhook event kinds."""

    BOUNCE = "bounce"
    SPAM_REPORT = "spamreport"
    BLOCKED = "blocked"
    DELIVERED = "delivered"


class BounceSeverity(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class ExhaustionReason(str, Enum):
    MAX_RETRIES = "max_retries"
    WINDOW_EXPIRED = "window_expired"
    PROVIDER_REJECTED = "provider_rejected"


def normalize_recipient(recipient: str, channel: Channel) -> str:
    """Canonical form of a recipient address for keying.

    Emails are case-insensitive for our purposes; phone numbers only lose
    surrounding whitespace.
    """
    value = recipient.strip()
    if channel is Channel.EMAIL:
        return value.lower()
    return value
