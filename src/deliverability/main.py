from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from shared.config import Settings, get_settings
from shared.exceptions import register_exception_handlers  # central mapping
from shared.infrastructure.observability.logger import configure_logging, get_logger
from shared.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware
from shared.redis import close_redis, connect_redis

from .api.dependencies import DeliverabilityContainer
from .api.routes.deliveries import router as deliveries_router
from .api.routes.health import router as health_router
from .api.routes.rate_limits import router as rate_limits_router
from .api.routes.suppressions import router as suppressions_router
from .api.routes.webhooks import router as webhooks_router
from .infrastructure.http_dispatcher import HttpDispatcher, LoggingDispatcher
from .infrastructure.redis_quota_store import RedisQuotaStore
from .infrastructure.scheduler import APSchedulerExecutor

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Wire the Redis store, retry scheduler and dispatcher, then replay any
    retries a previous process left armed.

    A container already on ``app.state`` (tests) is used as-is.
    """
    if getattr(app.state, "container", None) is not None:
        yield
        return

    settings: Settings = app.state.settings
    redis = await connect_redis(settings.redis_url)
    executor = APSchedulerExecutor()
    if settings.dispatch_url:
        dispatcher = HttpDispatcher(settings.dispatch_url, settings.dispatch_token, settings.dispatch_timeout_seconds)
    else:
        logger.warning("DISPATCH_URL not set; using log-only dispatcher")
        dispatcher = LoggingDispatcher()

    container = DeliverabilityContainer.build(
        settings,
        store=RedisQuotaStore(redis, key_prefix=settings.redis_key_prefix),
        executor=executor,
        dispatcher=dispatcher,
    )
    app.state.container = container

    executor.start()
    await container.retries.recover()
    logger.info("Deliverability service started", environment=settings.environment)
    try:
        yield
    finally:
        executor.stop()
        await dispatcher.aclose()
        await close_redis(redis)
        app.state.container = None
        logger.info("Deliverability service stopped")


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[DeliverabilityContainer] = None,
) -> FastAPI:
    if settings is None:
        settings = container.settings if container is not None else get_settings()
    configure_logging(settings.log_level, settings.json_logs)

    app = FastAPI(
        title="Notification Deliverability API",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(RequestLoggingMiddleware, environment=settings.environment)
    app.add_middleware(CorrelationIdMiddleware)

    # Routers
    app.include_router(webhooks_router)
    app.include_router(deliveries_router)
    app.include_router(rate_limits_router)
    app.include_router(suppressions_router)
    app.include_router(health_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    return app
