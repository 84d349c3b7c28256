"""Shared Redis client. Holds the session revocation list."""

from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import get_settings

settings = get_settings()

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the process-wide client, creating it on first use."""
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.request_timeout_seconds,
        )
    return _client


async def ping_redis() -> bool:
    try:
        return bool(await (await get_redis()).ping())
    except (RedisError, OSError):
        return False


async def close_redis() -> None:
    global _client
    if _client is not None:
        client, _client = _client, None
        await client.aclose()
