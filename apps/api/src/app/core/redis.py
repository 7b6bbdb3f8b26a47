"""
Redis Configuration

Async Redis client backing the shared rate-limit counters. Redis is
optional: when it is unreachable the rate limiter keeps per-process
counters instead, and `/ready` reports it as unavailable.
"""

from redis.asyncio import Redis, from_url

from app.core.config import settings

# Set only once a ping has succeeded
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Connect and ping Redis.

    Call this on application startup. The client is only published if the
    ping succeeds, so a failed connection leaves the in-memory fallback active.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    redis_client = client
    return client


async def get_redis() -> Redis | None:
    """Return the connected client, or None when running without Redis."""
    return redis_client


def is_redis_available() -> bool:
    return redis_client is not None


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
