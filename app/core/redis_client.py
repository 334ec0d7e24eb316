"""
Redis clients for the doctor cache and the distributed booking lock.

Redis is optional. Every accessor returns None when REDIS_URL is unset and
callers fall back to the database alone.
"""

import json
from typing import Any, cast

import redis
import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from app.config import settings

logger = structlog.get_logger()

_redis_client: redis.Redis | None = None
_async_redis_client: aioredis.Redis | None = None

CONNECT_TIMEOUT_SECONDS = 5


def get_redis_client() -> redis.Redis | None:
    """Shared synchronous client used by CacheManager, created on first use."""
    global _redis_client

    if not settings.redis_url:
        return None
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
            socket_keepalive=True,
            health_check_interval=30,
        )
    return _redis_client


def get_async_redis_client() -> aioredis.Redis | None:
    """Shared asyncio client used by RedisBookingLock, created on first use."""
    global _async_redis_client

    if not settings.redis_url:
        return None
    if _async_redis_client is None:
        _async_redis_client = aioredis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
        )
    return _async_redis_client


async def check_redis_connection() -> bool | None:
    """
    Ping Redis.

    Returns:
        None when Redis is not configured, otherwise whether the ping succeeded
    """
    client = get_async_redis_client()
    if client is None:
        return None
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


async def close_redis_connection() -> None:
    """Close both clients; the next accessor call reconnects."""
    global _redis_client, _async_redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
    if _async_redis_client is not None:
        await _async_redis_client.aclose()
        _async_redis_client = None


class CacheManager:
    """
    JSON cache over a synchronous Redis client.

    Redis errors are logged and reported as misses or failed writes; the
    cache never fails a request.
    """

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        """Return the decoded value under ``key``, or None on a miss."""
        try:
            value = cast(str | None, self.redis.get(key))
        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("cache_value_corrupt", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store ``value`` as JSON.

        Args:
            key: Cache key
            value: JSON-serialisable value; UUIDs and datetimes become strings
            ttl: Expiry in seconds, or None to keep indefinitely

        Returns:
            True if the value was written
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(key, ttl, payload)
            else:
                self.redis.set(key, payload)
        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove ``key``; True unless Redis failed."""
        try:
            self.redis.delete(key)
        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False
        return True
