"""
Structured Logging Configuration
Centralized logger with event-scoped context (recipient, channel, event_id)
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = {
    "apscheduler.scheduler": logging.WARNING,
    "apscheduler.executors.default": logging.WARNING,
    "httpx": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog on top of stdlib logging.

    JSON lines in production, colored console output otherwise. Context
    bound with ``bind_context`` (correlation_id, env) is merged into every
    entry. Scheduler and HTTP client chatter is held at WARNING unless the
    service itself runs at DEBUG.
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if level > logging.DEBUG:
        for name, quiet_level in _QUIET_LOGGERS.items():
            logging.getLogger(name).setLevel(quiet_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.warning("Recipient suppressed", recipient=recipient, channel="email")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Replace the request-scoped context with ``kwargs``."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
