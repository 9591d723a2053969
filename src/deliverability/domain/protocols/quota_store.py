"""
Quota Store Protocol (Abstract Interface)
Contract for the shared store behind quotas, suppressions and retries
"""
from __future__ import annotations

from typing import Optional, Protocol

from ..entities import WindowResult


class QuotaStore(Protocol):
    """
    Abstract store interface.

    The store is the single shared mutable resource of the deliverability
    core: every instance of the service talks to the same one, and services
    never cache what they read from it beyond a single operation.
    Implementations raise StoreUnavailableError when the backend fails.
    """

    # ---------- atomic windowed counter ----------

    async def window_consume(
        self,
        key: str,
        now_ms: int,
        window_ms: int,
        cap: int,
        member: str,
    ) -> WindowResult:
        """
        Prune, count and conditionally insert in a single atomic round trip.

        Entries older than ``now_ms - window_ms`` are removed; if fewer than
        ``cap`` remain, ``member`` is inserted with score ``now_ms`` and the
        key TTL is refreshed to ``window_ms``.

        Returns:
            WindowResult with the pre-insert count and the oldest retained score
        """
        ...

    async def window_peek(self, key: str, now_ms: int, window_ms: int) -> WindowResult:
        """
        Count entries within the window without inserting.

        Returns:
            WindowResult (``admitted`` is always False)
        """
        ...

    # ---------- set membership ----------

    async def add_member(self, set_key: str, value: str) -> None:
        ...

    async def is_member(self, set_key: str, value: str) -> bool:
        ...

    async def remove_member(self, set_key: str, value: str) -> None:
        ...

    async def members(self, set_key: str) -> set[str]:
        ...

    # ---------- key/value with TTL ----------

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """
        Set a value with optional TTL.

        Args:
            key: Store key
            value: Serialized value
            ttl_ms: Time-to-live in milliseconds (None for no expiration)
            only_if_absent: Only write when the key does not exist (SET NX)

        Returns:
            True if the value was written
        """
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def scan(self, prefix: str) -> list[str]:
        """Return every live key starting with ``prefix``."""
        ...

    # ---------- lists ----------

    async def push(self, key: str, value: str) -> int:
        """Push ``value`` at the head of the list; returns the new length."""
        ...

    async def range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        ...

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    # ---------- health ----------

    async def ping(self) -> bool:
        ...
