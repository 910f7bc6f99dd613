"""
Redis client initialization.

Redis holds the segment snapshots that let an in-flight tracking leg
survive a process restart independently of the trip record store.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from driverpay.app.core.config import settings

logger = logging.getLogger("driverpay.redis")

# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    FastAPI dependency returning the Redis client.

    Overridden in tests with an in-process fake.
    """
    return redis_client


async def ping_redis(client=None) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    client = client or redis_client
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
