# src/shared/middleware.py
from __future__ import annotations

import time
import uuid

from fastapi import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from shared.infrastructure.observability.logger import bind_context, clear_context, get_logger

logger = get_logger(__name__)


class CorrelationIdMiddleware:
    """
    Ensures every request has a correlation id.
    - Reads from X-Correlation-ID if provided, otherwise generates one.
    - Exposes request.state.correlation_id for downstream usage.
    - Echoes X-Correlation-ID in response headers.
    """
    def __init__(self, app: ASGIApp, header_name: str = "X-Correlation-ID"):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        corr = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.correlation_id = corr

        async def send_wrapper(message):
            if message.get("type") == "http.response.start":
                headers = list(message.get("headers") or [])
                headers.append((self.header_name.encode(), corr.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestLoggingMiddleware:
    """
    Request timing + structured logging.
    Binds the correlation id into the log context for the request's duration.
    """
    def __init__(self, app: ASGIApp, environment: str = "local"):
        self.app = app
        self.environment = environment

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        corr_id = getattr(request.state, "correlation_id", None)
        start = time.perf_counter()
        bind_context(correlation_id=corr_id, env=self.environment)

        async def send_wrapper(message):
            if message.get("type") == "http.response.start":
                logger.info(
                    "HTTP request completed",
                    method=scope.get("method"),
                    path=scope.get("path"),
                    status=message.get("status"),
                    duration_ms=int((time.perf_counter() - start) * 1000),
                )
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            clear_context()
