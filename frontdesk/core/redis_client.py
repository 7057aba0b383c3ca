"""Redis client for the optional preference cache."""

import json
from typing import Any

import redis
import structlog
from redis.asyncio import Redis

from frontdesk.config import settings

logger = structlog.get_logger(__name__)

# Keys of this service never collide with other tenants of the same Redis
KEY_PREFIX = "frontdesk"

# Global Redis client instance
_redis_client: Redis | None = None


def get_redis_client() -> Redis:
    """
    Get or create Redis client instance.

    The client is created lazily and opens connections on first use.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password or None,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )

    return _redis_client


def get_cache_manager() -> "CacheManager | None":
    """Cache manager for the configured Redis, or None when caching is disabled."""
    if not settings.redis_enabled:
        return None
    return CacheManager(get_redis_client())


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        return bool(await get_redis_client().ping())
    except redis.RedisError as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


async def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class CacheManager:
    """
    JSON cache over Redis.

    Every operation fails open: a Redis outage makes lookups miss and
    writes no-ops, and the queue keeps working from the appointment service.
    """

    def __init__(self, redis_client: Redis, prefix: str = KEY_PREFIX):
        """Initialize cache manager with Redis client and key prefix."""
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get_json(self, key: str) -> Any | None:
        """
        Get JSON value from cache and deserialize.

        Args:
            key: Cache key, without the prefix

        Returns:
            Deserialized object, or None on a miss or any error
        """
        try:
            value = await self.redis.get(self._key(key))
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.debug("cache_read_failed", key=key, error=str(e))
            return None

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key, without the prefix
            value: JSON-serializable value
            ttl: Time to live in seconds; 0 or None keeps the key until deleted

        Returns:
            True if successful, False otherwise
        """
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                await self.redis.setex(self._key(key), ttl, json_value)
            else:
                await self.redis.set(self._key(key), json_value)
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.debug("cache_write_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            await self.redis.delete(self._key(key))
            return True
        except redis.RedisError as e:
            logger.debug("cache_delete_failed", key=key, error=str(e))
            return False
