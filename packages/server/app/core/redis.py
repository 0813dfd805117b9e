"""Redis connection management (session revocation list)."""

from __future__ import annotations

import redis.asyncio as redis
import structlog

from app.core.config import get_settings

log = structlog.get_logger()

_redis_client: redis.Redis | None = None
_redis_url: str | None = None


def configure_redis(url: str) -> None:
    """Point the shared client at ``url``; called by ``create_app``."""
    global _redis_client, _redis_url
    if url != _redis_url:
        _redis_client = None
    _redis_url = url


async def get_redis() -> redis.Redis:
    """Get or create the shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            _redis_url or get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def redis_ready() -> bool:
    """True when Redis answers a PING."""
    try:
        client = await get_redis()
        return bool(await client.ping())
    except redis.RedisError as exc:
        log.warning("redis.unavailable", error=str(exc))
        return False


async def close_redis() -> None:
    """Close the Redis client and its pool."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
