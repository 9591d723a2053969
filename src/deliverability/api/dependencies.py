"""
Service wiring for the HTTP shell.

One DeliverabilityContainer per process, built in the app lifespan and
stored on ``app.state``. Route handlers pull services from it via the
``get_*`` dependencies below.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from shared.config import Settings

from ..application.services import (
    AbuseTracker,
    BounceClassifier,
    DeliveryGuard,
    RateLimiter,
    RetryScheduler,
    SmsOptOutService,
    SuppressionRegistry,
    WebhookService,
)
from ..domain.policies import PolicyBook, RetryPolicy
from ..domain.protocols.clock import Clock, SystemClock
from ..domain.protocols.deferred_executor import DeferredExecutor
from ..domain.protocols.dispatcher import Dispatcher
from ..domain.protocols.quota_store import QuotaStore


@dataclass
class DeliverabilityContainer:
    settings: Settings
    store: QuotaStore
    executor: DeferredExecutor
    dispatcher: Dispatcher
    clock: Clock
    limiter: RateLimiter
    abuse: AbuseTracker
    suppressions: SuppressionRegistry
    retries: RetryScheduler
    classifier: BounceClassifier
    guard: DeliveryGuard
    webhooks: WebhookService
    opt_outs: SmsOptOutService

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: QuotaStore,
        executor: DeferredExecutor,
        dispatcher: Dispatcher,
        clock: Optional[Clock] = None,
    ) -> "DeliverabilityContainer":
        clock = clock or SystemClock()
        policies = PolicyBook.from_settings(settings.category_limits)
        retry_policy = RetryPolicy.from_settings(settings.retry)

        limiter = RateLimiter(store, policies, clock)
        abuse = AbuseTracker(store, clock)
        suppressions = SuppressionRegistry(store, clock, settings.suppression_ttls)
        retries = RetryScheduler(store, suppressions, dispatcher, executor, retry_policy, clock)
        classifier = BounceClassifier(suppressions, retries)
        return cls(
            settings=settings,
            store=store,
            executor=executor,
            dispatcher=dispatcher,
            clock=clock,
            limiter=limiter,
            abuse=abuse,
            suppressions=suppressions,
            retries=retries,
            classifier=classifier,
            guard=DeliveryGuard(limiter, suppressions, abuse, dispatcher, clock),
            webhooks=WebhookService(
                classifier, store, settings.webhook_secret, settings.event_dedup_ttl_seconds
            ),
            opt_outs=SmsOptOutService(suppressions),
        )


def get_container(request: Request) -> DeliverabilityContainer:
    return request.app.state.container


def get_webhook_service(request: Request) -> WebhookService:
    return get_container(request).webhooks


def get_delivery_guard(request: Request) -> DeliveryGuard:
    return get_container(request).guard


def get_suppression_registry(request: Request) -> SuppressionRegistry:
    return get_container(request).suppressions


def get_opt_out_service(request: Request) -> SmsOptOutService:
    return get_container(request).opt_outs


def get_quota_store(request: Request) -> QuotaStore:
    return get_container(request).store
