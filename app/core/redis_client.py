"""Redis clients for the availability cache and distributed scope locks."""

import json
from typing import Any, cast

import redis
import redis.asyncio as aioredis
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

_redis_client: redis.Redis | None = None
_async_redis_client: aioredis.Redis | None = None


def _connection_options() -> dict[str, Any]:
    """Connection settings shared by the sync and asyncio clients."""
    return {
        "host": settings.redis_host,
        "port": settings.redis_port,
        "username": settings.redis_username,
        "password": settings.redis_password,
        "socket_connect_timeout": 5,
        "socket_keepalive": True,
        "health_check_interval": 30,
    }


def get_redis_client() -> redis.Redis:
    """Get or create the sync client behind the availability cache."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            decode_responses=settings.redis_decode_responses,
            **_connection_options(),
        )
    return _redis_client


def get_async_redis_client() -> aioredis.Redis:
    """Get or create the asyncio client used for distributed scope locks."""
    global _async_redis_client

    if _async_redis_client is None:
        _async_redis_client = aioredis.Redis(**_connection_options())
    return _async_redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if the server answered a ping, False otherwise
    """
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


async def close_redis_connection() -> None:
    """Close both Redis clients if they were opened."""
    global _redis_client, _async_redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None

    if _async_redis_client is not None:
        await _async_redis_client.aclose()
        _async_redis_client = None


class CacheManager:
    """
    JSON cache on top of Redis.

    Keys are namespaced with ``prefix``. The cache is best effort: a Redis
    failure reads as a miss and a failed write is reported as False, so
    callers fall back to the database.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "clinic-queue"):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client
        self.prefix = prefix

    def key(self, name: str) -> str:
        """Full Redis key of a cache entry."""
        return f"{self.prefix}:{name}"

    def get_json(self, name: str) -> Any | None:
        """
        Read and deserialize a cached value.

        Returns:
            The cached object, or None on a miss or error
        """
        try:
            value = cast(str | bytes | None, self.redis.get(self.key(name)))
        except redis.RedisError as e:
            logger.warning("cache_read_failed", key=name, error=str(e))
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("cache_entry_corrupt", key=name)
            return None

    def set_json(self, name: str, value: Any, ttl: int | None = None) -> bool:
        """
        Serialize and store a value.

        Args:
            name: Cache entry name
            value: JSON-serializable value
            ttl: Time to live in seconds

        Returns:
            True if stored, False otherwise
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(self.key(name), ttl, payload)
            else:
                self.redis.set(self.key(name), payload)
        except redis.RedisError as e:
            logger.warning("cache_write_failed", key=name, error=str(e))
            return False
        return True

    def delete(self, name: str) -> bool:
        """Drop a cache entry."""
        try:
            self.redis.delete(self.key(name))
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", key=name, error=str(e))
            return False
        return True
