# src/deliverability/domain/exceptions.py
"""
Deliverability Domain Exceptions
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status

from shared.exceptions import DomainError, RateLimitedError, ServiceUnavailableError

from .entities import RateLimitStatus


class DeliverabilityError(DomainError):
    """Base exception for deliverability domain errors."""
    code = "deliverability_error"


class StoreUnavailableError(ServiceUnavailableError):
    """Raised by store adapters when the backing store cannot be reached."""
    code = "store_unavailable"


class QuotaUnavailable(DeliverabilityError):
    """Raised when the quota store is unreachable during a capped-category check."""
    code = "quota_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class QuotaExceededError(RateLimitedError):
    """Raised on the send path when a subject has exhausted its category quota."""

    def __init__(
        self,
        subject_id: str,
        category: str,
        rate_limit: RateLimitStatus,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(
            f"Rate limit exceeded for {category}",
            details={
                "subjectId": subject_id,
                "category": category,
                "limit": rate_limit.limit,
                "remaining": rate_limit.remaining,
                "resetAt": rate_limit.reset_at,
                "retryAfter": retry_after,
            },
        )
        self.rate_limit = rate_limit


class RecipientSuppressedError(DeliverabilityError):
    """Raised when a send targets a suppressed (recipient, channel) pair."""
    code = "recipient_suppressed"
    status_code = status.HTTP_403_FORBIDDEN


class ProviderRejectedError(DeliverabilityError):
    """Raised when the provider refused a message on the send path."""
    code = "provider_rejected"
    status_code = status.HTTP_502_BAD_GATEWAY


class DuplicateEvent(DeliverabilityError):
    """Raised when a provider event was already processed."""
    code = "duplicate_event"
    status_code = status.HTTP_200_OK


class DispatchFailure(Exception):
    """Raised by dispatchers when a provider call fails.

    Not a DomainError: it never crosses the service boundary on its own.
    """

    def __init__(self, message: str, *, retryable: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.details = details or {}
