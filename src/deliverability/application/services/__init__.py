from .abuse_tracker import AbuseTracker
from .bounce_classifier import BounceClassifier, BounceOutcome
from .delivery_guard import DeliveryGuard
from .rate_limiter import RateLimiter
from .retry_scheduler import RecoveryResult, RetryScheduler
from .sms_opt_out_service import SmsOptOutService
from .suppression_registry import SuppressionRegistry
from .webhook_service import WebhookService

__all__ = [
    "AbuseTracker",
    "BounceClassifier",
    "BounceOutcome",
    "DeliveryGuard",
    "RateLimiter",
    "RecoveryResult",
    "RetryScheduler",
    "SmsOptOutService",
    "SuppressionRegistry",
    "WebhookService",
]
