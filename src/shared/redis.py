# src/shared/redis.py
from __future__ import annotations

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.exceptions import ServiceUnavailableError
from shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


async def connect_redis(url: str, *, max_connections: int = 100) -> Redis:
    """Create an async client and verify the connection with a PING."""
    # NOTE: from_url is sync; do NOT await it
    client = redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,            # return str instead of bytes
        health_check_interval=30,         # ping occasionally
        socket_connect_timeout=5.0,
        socket_timeout=5.0,
        retry_on_timeout=True,
        max_connections=max_connections,
    )
    try:
        await client.ping()
    except RedisError as e:
        await client.aclose()
        raise ServiceUnavailableError(f"Redis connection failed: {e}") from e
    logger.info("Redis connected")
    return client


async def close_redis(client: Optional[Redis]) -> None:
    if client is None:
        return
    try:
        await client.aclose()
    except RedisError as e:
        # Best-effort shutdown
        logger.warning("Redis close failed", error=str(e))
