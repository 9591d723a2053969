"""
Centralized configuration for the notification deliverability service.

- Pure Python (dataclasses + stdlib) settings, values loaded from the OS env.
- Parses a .env file through python-dotenv before reading the environment.
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

from shared.infrastructure.observability.logger import get_logger


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _get_env_optional_int(key: str, default: Optional[int]) -> Optional[int]:
    """Like _get_env_int, but an explicitly empty value means None (no TTL)."""
    v = os.getenv(key)
    if v is None:
        return default
    if v.strip() == "" or v.strip().lower() == "none":
        return None
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer or empty")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or (parsed.scheme != "unix" and not parsed.netloc):
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


# ------------------------------------------------------------------------------
# Policy settings
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class CategoryLimitSettings:
    cap: int
    window_seconds: int
    bypassable: bool = False

    def __post_init__(self) -> None:
        if self.cap < -1:
            raise ValueError("cap must be >= -1 (-1 means unlimited)")
        if self.window_seconds < 0:
            raise ValueError("window_seconds must be >= 0")
        if self.cap > 0 and not self.bypassable and self.window_seconds == 0:
            raise ValueError("capped categories need a positive window_seconds")


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 3
    base_delay_ms: int = 5 * 60 * 1000
    retry_window_ms: int = 24 * 60 * 60 * 1000
    grace_ms: int = 60 * 1000
    backoff_schedule_ms: tuple[int, ...] = (5 * 60 * 1000, 30 * 60 * 1000, 60 * 60 * 1000)

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("RETRY_MAX_ATTEMPTS must be > 0")
        if self.base_delay_ms <= 0:
            raise ValueError("RETRY_BASE_DELAY_MS must be > 0")
        if self.retry_window_ms < self.base_delay_ms:
            raise ValueError("RETRY_WINDOW_MS must be >= RETRY_BASE_DELAY_MS")
        if any(d <= 0 for d in self.backoff_schedule_ms):
            raise ValueError("RETRY_BACKOFF_SCHEDULE_MS entries must be > 0")


THIRTY_DAYS_SECONDS = 30 * 24 * 60 * 60

# Defaults per category name (see deliverability.domain.value_objects.Category)
DEFAULT_CATEGORY_LIMITS: dict[str, CategoryLimitSettings] = {
    "bidAlert": CategoryLimitSettings(cap=5, window_seconds=3600),
    "marketing": CategoryLimitSettings(cap=2, window_seconds=86400),
    "2fa": CategoryLimitSettings(cap=-1, window_seconds=0, bypassable=True),
    "purchase": CategoryLimitSettings(cap=-1, window_seconds=0, bypassable=True),
}

# Defaults per suppression source; None = permanent
DEFAULT_SUPPRESSION_TTLS: dict[str, Optional[int]] = {
    "policy": THIRTY_DAYS_SECONDS,
    "bounce": None,
    "spam": None,
    "manual": None,
    "carrier": THIRTY_DAYS_SECONDS,
}


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "test", "staging", "prod"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False

    # Store
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "notify"

    # Provider webhook shared secret (X-Webhook-Token)
    webhook_secret: Optional[str] = None

    # Policies
    category_limits: dict[str, CategoryLimitSettings] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_LIMITS)
    )
    retry: RetrySettings = field(default_factory=RetrySettings)
    suppression_ttls: dict[str, Optional[int]] = field(
        default_factory=lambda: dict(DEFAULT_SUPPRESSION_TTLS)
    )
    event_dedup_ttl_seconds: int = 24 * 60 * 60

    # Provider dispatch (unset = log-only dispatcher)
    dispatch_url: Optional[str] = None
    dispatch_token: Optional[str] = None
    dispatch_timeout_seconds: int = 10

    # Observability
    log_level: str = "INFO"
    json_logs: bool = True

    # Paths
    base_dir: Path = field(default_factory=lambda: Path(__file__).resolve().parent.parent)

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "test", "staging", "prod"), key="ENVIRONMENT"),
        )
        _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss", "unix"))

        if not self.redis_key_prefix or ":" in self.redis_key_prefix.strip(":"):
            raise ValueError("REDIS_KEY_PREFIX must be a single non-empty segment")

        if self.webhook_secret is not None and len(self.webhook_secret) < 8:
            raise ValueError("WEBHOOK_SECRET looks too short")
        if self.environment == "prod" and not self.webhook_secret:
            raise ValueError("WEBHOOK_SECRET must be set in prod")

        unknown_sources = set(self.suppression_ttls) - set(DEFAULT_SUPPRESSION_TTLS)
        if unknown_sources:
            raise ValueError(f"Unknown suppression sources: {sorted(unknown_sources)}")
        for source, ttl in self.suppression_ttls.items():
            if ttl is not None and ttl <= 0:
                raise ValueError(f"SUPPRESSION_TTL_{source.upper()}_SECONDS must be > 0 or empty")

        if self.event_dedup_ttl_seconds <= 0:
            raise ValueError("EVENT_DEDUP_TTL_SECONDS must be > 0")

        _validate_url(self.dispatch_url, key="DISPATCH_URL", allowed_schemes=("http", "https"))
        if self.dispatch_timeout_seconds <= 0:
            raise ValueError("DISPATCH_TIMEOUT_SECONDS must be > 0")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        env = self.environment
        object.__setattr__(self, "is_prod", env == "prod")
        object.__setattr__(self, "is_local", env == "local")

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "redis_key_prefix": self.redis_key_prefix,
            "webhook_secret": _mask_secret(self.webhook_secret),
            "category_limits": {
                name: {"cap": c.cap, "window_seconds": c.window_seconds, "bypassable": c.bypassable}
                for name, c in self.category_limits.items()
            },
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "base_delay_ms": self.retry.base_delay_ms,
                "retry_window_ms": self.retry.retry_window_ms,
                "grace_ms": self.retry.grace_ms,
                "backoff_schedule_ms": list(self.retry.backoff_schedule_ms),
            },
            "suppression_ttls": dict(self.suppression_ttls),
            "dispatch_url": self.dispatch_url or "<unset>",
            "dispatch_token": _mask_secret(self.dispatch_token),
            "log_level": self.log_level,
            "json_logs": self.json_logs,
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = get_logger(__name__)


def _env_key(name: str) -> str:
    # "bidAlert" -> "BID_ALERT", "2fa" -> "2FA"
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def _load_category_limits() -> dict[str, CategoryLimitSettings]:
    limits: dict[str, CategoryLimitSettings] = {}
    for name, default in DEFAULT_CATEGORY_LIMITS.items():
        prefix = f"RATE_LIMIT_{_env_key(name)}"
        limits[name] = CategoryLimitSettings(
            cap=_get_env_int(f"{prefix}_CAP", default.cap),
            window_seconds=_get_env_int(f"{prefix}_WINDOW_SECONDS", default.window_seconds),
            bypassable=_get_env_bool(f"{prefix}_BYPASSABLE", default.bypassable),
        )
    return limits


def _load_backoff_schedule(default: tuple[int, ...]) -> tuple[int, ...]:
    raw = os.getenv("RETRY_BACKOFF_SCHEDULE_MS")
    if raw is None:
        return default
    if raw.strip() == "":
        return ()
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValueError("RETRY_BACKOFF_SCHEDULE_MS must be a comma-separated list of integers")


def _load_retry() -> RetrySettings:
    defaults = RetrySettings()
    return RetrySettings(
        max_attempts=_get_env_int("RETRY_MAX_ATTEMPTS", defaults.max_attempts),
        base_delay_ms=_get_env_int("RETRY_BASE_DELAY_MS", defaults.base_delay_ms),
        retry_window_ms=_get_env_int("RETRY_WINDOW_MS", defaults.retry_window_ms),
        grace_ms=_get_env_int("RETRY_GRACE_MS", defaults.grace_ms),
        backoff_schedule_ms=_load_backoff_schedule(defaults.backoff_schedule_ms),
    )


def _load_suppression_ttls() -> dict[str, Optional[int]]:
    return {
        source: _get_env_optional_int(f"SUPPRESSION_TTL_{source.upper()}_SECONDS", default)
        for source, default in DEFAULT_SUPPRESSION_TTLS.items()
    }


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Attempt to load .env from repo root (../../.env relative to src/shared/)
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    settings = Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        redis_url=_get_env_str("REDIS_URL", "redis://localhost:6379/0") or "redis://localhost:6379/0",
        redis_key_prefix=_get_env_str("REDIS_KEY_PREFIX", "notify") or "notify",
        webhook_secret=_get_env_str("WEBHOOK_SECRET", None) or None,
        category_limits=_load_category_limits(),
        retry=_load_retry(),
        suppression_ttls=_load_suppression_ttls(),
        event_dedup_ttl_seconds=_get_env_int("EVENT_DEDUP_TTL_SECONDS", 24 * 60 * 60),
        dispatch_url=_get_env_str("DISPATCH_URL", None) or None,
        dispatch_token=_get_env_str("DISPATCH_TOKEN", None) or None,
        dispatch_timeout_seconds=_get_env_int("DISPATCH_TIMEOUT_SECONDS", 10),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        json_logs=_get_env_bool("JSON_LOGS", True),
    )

    _logger.info("Settings loaded", settings=settings.safe_dict())
    return settings
