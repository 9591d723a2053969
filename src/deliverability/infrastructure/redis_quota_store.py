"""
Redis Quota Store Implementation
Async Redis-backed store shared by every service instance
"""
from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.infrastructure.observability.logger import get_logger

from ..domain.entities import WindowResult
from ..domain.exceptions import StoreUnavailableError

logger = get_logger(__name__)

T = TypeVar("T")


class RedisQuotaStore:
    """
    Async Redis store implementation.

    Sliding windows are sorted sets scored by epoch-ms; the prune/count/insert
    sequence runs as one Lua script so concurrent callers on the same key are
    serialized by Redis itself.

    Attributes:
        redis: Async Redis client
        key_prefix: Prefix for all keys (for namespacing)
    """

    # KEYS[1] = window key
    # ARGV[1] = now (ms), ARGV[2] = window (ms), ARGV[3] = cap, ARGV[4] = member
    _WINDOW_CONSUME_LUA = """
    local key = KEYS[1]
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    local cap = tonumber(ARGV[3])
    local window_start = now - window

    redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. window_start)
    local count = redis.call('ZCARD', key)

    if count >= cap then
      local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
      if oldest[2] then
        return {0, count, tonumber(oldest[2])}
      end
      return {0, count, -1}
    end

    redis.call('ZADD', key, now, ARGV[4])
    redis.call('PEXPIRE', key, window)
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    return {1, count, tonumber(oldest[2])}
    """

    # KEYS[1] = window key
    # ARGV[1] = now (ms), ARGV[2] = window (ms)
    _WINDOW_PEEK_LUA = """
    local key = KEYS[1]
    local window_start = tonumber(ARGV[1]) - tonumber(ARGV[2])
    local count = redis.call('ZCOUNT', key, window_start, '+inf')
    local oldest = redis.call('ZRANGEBYSCORE', key, window_start, '+inf', 'WITHSCORES', 'LIMIT', 0, 1)
    if oldest[2] then
      return {count, tonumber(oldest[2])}
    end
    return {count, -1}
    """

    def __init__(self, redis: Redis, key_prefix: str = "notify") -> None:
        """
        Initialize Redis store.

        Args:
            redis: Async Redis client instance (decode_responses=True)
            key_prefix: Prefix for store keys (default: "notify")
        """
        self.redis = redis
        self.key_prefix = key_prefix
        self._consume_script = redis.register_script(self._WINDOW_CONSUME_LUA)
        self._peek_script = redis.register_script(self._WINDOW_PEEK_LUA)

    def _make_key(self, key: str) -> str:
        """Create prefixed key for namespacing."""
        return f"{self.key_prefix}:{key}"

    def _strip_key(self, key: str) -> str:
        return key[len(self.key_prefix) + 1:]

    async def _guard(self, op: str, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except RedisError as e:
            logger.error("Redis operation failed", op=op, key=key, error=str(e))
            raise StoreUnavailableError(f"Redis {op} failed: {e}") from e

    # ---------- atomic windowed counter ----------

    async def window_consume(
        self,
        key: str,
        now_ms: int,
        window_ms: int,
        cap: int,
        member: str,
    ) -> WindowResult:
        full_key = self._make_key(key)
        admitted, count, oldest = await self._guard(
            "window_consume",
            key,
            lambda: self._consume_script(keys=[full_key], args=[now_ms, window_ms, cap, member]),
        )
        return WindowResult(
            admitted=bool(int(admitted)),
            count=int(count),
            oldest_ms=int(oldest) if int(oldest) >= 0 else None,
        )

    async def window_peek(self, key: str, now_ms: int, window_ms: int) -> WindowResult:
        full_key = self._make_key(key)
        count, oldest = await self._guard(
            "window_peek",
            key,
            lambda: self._peek_script(keys=[full_key], args=[now_ms, window_ms]),
        )
        return WindowResult(
            admitted=False,
            count=int(count),
            oldest_ms=int(oldest) if int(oldest) >= 0 else None,
        )

    # ---------- set membership ----------

    async def add_member(self, set_key: str, value: str) -> None:
        await self._guard("SADD", set_key, lambda: self.redis.sadd(self._make_key(set_key), value))

    async def is_member(self, set_key: str, value: str) -> bool:
        result = await self._guard(
            "SISMEMBER", set_key, lambda: self.redis.sismember(self._make_key(set_key), value)
        )
        return bool(result)

    async def remove_member(self, set_key: str, value: str) -> None:
        await self._guard("SREM", set_key, lambda: self.redis.srem(self._make_key(set_key), value))

    async def members(self, set_key: str) -> set[str]:
        result = await self._guard("SMEMBERS", set_key, lambda: self.redis.smembers(self._make_key(set_key)))
        return set(result)

    # ---------- key/value with TTL ----------

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        result = await self._guard(
            "SET",
            key,
            lambda: self.redis.set(self._make_key(key), value, px=ttl_ms, nx=only_if_absent),
        )
        return bool(result)

    async def get(self, key: str) -> Optional[str]:
        return await self._guard("GET", key, lambda: self.redis.get(self._make_key(key)))

    async def delete(self, key: str) -> bool:
        result = await self._guard("DEL", key, lambda: self.redis.delete(self._make_key(key)))
        return result > 0

    async def scan(self, prefix: str) -> list[str]:
        pattern = f"{self._make_key(prefix)}*"

        async def _collect() -> list[str]:
            return [self._strip_key(k) async for k in self.redis.scan_iter(match=pattern, count=100)]

        return await self._guard("SCAN", prefix, _collect)

    # ---------- lists ----------

    async def push(self, key: str, value: str) -> int:
        return await self._guard("LPUSH", key, lambda: self.redis.lpush(self._make_key(key), value))

    async def range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return await self._guard("LRANGE", key, lambda: self.redis.lrange(self._make_key(key), start, stop))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        result = await self._guard("EXPIRE", key, lambda: self.redis.expire(self._make_key(key), ttl_seconds))
        return bool(result)

    # ---------- health ----------

    async def ping(self) -> bool:
        """
        Ping Redis to check connectivity.

        Returns:
            True if Redis is reachable
        """
        try:
            await self.redis.ping()
            return True
        except RedisError as e:
            logger.error("Redis PING failed", error=str(e))
            return False
