from __future__ import annotations

import asyncio
from typing import Any, Optional

from ..domain.entities import WindowResult
from ..domain.exceptions import StoreUnavailableError
from ..domain.protocols.clock import Clock, SystemClock


class InMemoryQuotaStore:
    """
    Async-compatible in-memory store for tests and single-process local runs.
    **Not for production**: state dies with the process and is invisible to
    other instances.

    One asyncio.Lock serializes every operation, which gives the same
    per-key atomicity the Redis Lua scripts give. Expiry follows the injected
    clock so tests can move time forward.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()
        self._data: dict[str, Any] = {}
        self._exp: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.available = True

    # ---------- internals ----------

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("in-memory store marked unavailable")

    def _purge_if_needed(self, key: str) -> None:
        exp = self._exp.get(key)
        if exp is not None and self._clock.now_ms() >= exp:
            self._data.pop(key, None)
            self._exp.pop(key, None)

    def _live(self, key: str) -> Any:
        self._purge_if_needed(key)
        return self._data.get(key)

    def _set_ttl_ms(self, key: str, ttl_ms: Optional[int]) -> None:
        if ttl_ms is None:
            self._exp.pop(key, None)
        else:
            self._exp[key] = self._clock.now_ms() + ttl_ms

    # ---------- atomic windowed counter ----------

    async def window_consume(
        self,
        key: str,
        now_ms: int,
        window_ms: int,
        cap: int,
        member: str,
    ) -> WindowResult:
        async with self._lock:
            self._check_available()
            window: dict[str, int] = self._live(key) or {}
            window_start = now_ms - window_ms
            window = {m: score for m, score in window.items() if score >= window_start}
            count = len(window)
            if count >= cap:
                self._data[key] = window
                oldest = min(window.values()) if window else None
                return WindowResult(admitted=False, count=count, oldest_ms=oldest)
            # Yield inside the critical section: callers racing for the same
            # key must still queue on the lock.
            await asyncio.sleep(0)
            window[member] = now_ms
            self._data[key] = window
            self._set_ttl_ms(key, window_ms)
            return WindowResult(admitted=True, count=count, oldest_ms=min(window.values()))

    async def window_peek(self, key: str, now_ms: int, window_ms: int) -> WindowResult:
        async with self._lock:
            self._check_available()
            window: dict[str, int] = self._live(key) or {}
            window_start = now_ms - window_ms
            retained = [score for score in window.values() if score >= window_start]
            return WindowResult(
                admitted=False,
                count=len(retained),
                oldest_ms=min(retained) if retained else None,
            )

    # ---------- set membership ----------

    async def add_member(self, set_key: str, value: str) -> None:
        async with self._lock:
            self._check_available()
            members = self._live(set_key) or set()
            members.add(value)
            self._data[set_key] = members

    async def is_member(self, set_key: str, value: str) -> bool:
        async with self._lock:
            self._check_available()
            return value in (self._live(set_key) or set())

    async def remove_member(self, set_key: str, value: str) -> None:
        async with self._lock:
            self._check_available()
            members = self._live(set_key)
            if members:
                members.discard(value)

    async def members(self, set_key: str) -> set[str]:
        async with self._lock:
            self._check_available()
            return set(self._live(set_key) or set())

    # ---------- key/value with TTL ----------

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        async with self._lock:
            self._check_available()
            if only_if_absent and self._live(key) is not None:
                return False
            self._data[key] = value
            self._set_ttl_ms(key, ttl_ms)
            return True

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            self._check_available()
            value = self._live(key)
            return None if value is None else str(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._check_available()
            existed = self._live(key) is not None
            self._data.pop(key, None)
            self._exp.pop(key, None)
            return existed

    async def scan(self, prefix: str) -> list[str]:
        async with self._lock:
            self._check_available()
            return [k for k in list(self._data) if k.startswith(prefix) and self._live(k) is not None]

    # ---------- lists ----------

    async def push(self, key: str, value: str) -> int:
        async with self._lock:
            self._check_available()
            items = self._live(key) or []
            items.insert(0, value)
            self._data[key] = items
            return len(items)

    async def range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        async with self._lock:
            self._check_available()
            items = list(self._live(key) or [])
            end = None if stop == -1 else stop + 1
            return items[start:end]

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            self._check_available()
            if self._live(key) is None:
                return False
            self._set_ttl_ms(key, ttl_seconds * 1000)
            return True

    # ---------- health ----------

    async def ping(self) -> bool:
        return self.available
