"""
Redis Cache Module

Caching layer with:
- Connection pooling
- Automatic JSON serialization
- TTL management
- Versioned keys that go stale when the underlying data changes
"""

import json
from typing import Any, Awaitable, Callable, Optional, Union
from datetime import timedelta

import structlog
from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from shop_analytics.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    _redis_pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )

    _redis_client = Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        raise

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

    logger.info("Redis connection closed")


def get_redis() -> Redis:
    """Get Redis client instance"""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def cache_get(key: str, client: Optional[Redis] = None) -> Optional[Any]:
    """
    Get value from cache.

    Args:
        key: Cache key
        client: Redis client, the global one by default

    Returns:
        Cached value or None if not found
    """
    client = client if client is not None else get_redis()
    value = await client.get(key)

    if value is None:
        return None

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


async def cache_set(
    key: str,
    value: Any,
    ttl: Optional[Union[int, timedelta]] = None,
    client: Optional[Redis] = None,
) -> bool:
    """
    Set value in cache.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time-to-live in seconds or timedelta
        client: Redis client, the global one by default

    Returns:
        True if successful
    """
    client = client if client is not None else get_redis()

    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to serialize value for cache", key=key, error=str(e))
        return False

    if ttl:
        if isinstance(ttl, timedelta):
            ttl = int(ttl.total_seconds())
        await client.setex(key, ttl, serialized)
    else:
        await client.set(key, serialized)

    return True


class CacheManager:
    """
    Cache manager with namespace support and versioned keys.

    Example:
        cache = CacheManager("admin_analytics")
        series = await cache.compute_if_stale(
            "timeseries:overall:none:revenue:day:90d",
            version_fn=aggregator_version,
            compute_fn=build_series,
        )
    """

    def __init__(
        self,
        namespace: str,
        default_ttl: int = 3600,
        client: Optional[Redis] = None,
    ):
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._client = client

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        return await cache_get(self._key(key), client=self._client)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set value in cache"""
        return await cache_set(self._key(key), value, ttl or self.default_ttl, client=self._client)

    async def _safe_get(self, key: str) -> Optional[Any]:
        try:
            return await self.get(key)
        except (RedisError, RuntimeError) as e:
            logger.warning("Cache read failed, computing directly", key=self._key(key), error=str(e))
            return None

    async def _safe_set(self, key: str, value: Any, ttl: Optional[int]) -> None:
        try:
            await self.set(key, value, ttl)
        except (RedisError, RuntimeError) as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key
            factory: Async function to compute value if not cached
            ttl: Time-to-live

        Returns:
            Cached or computed value
        """
        value = await self._safe_get(key)

        if value is not None:
            logger.debug("Cache hit", key=self._key(key))
            return value

        logger.debug("Cache miss", key=self._key(key))
        value = await factory()
        await self._safe_set(key, value, ttl)

        return value

    async def compute_if_stale(
        self,
        key: str,
        version_fn: Callable[[], Awaitable[str]],
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Return the cached value for the current data version, computing it
        when that version has not been cached yet.

        The version is appended to the key, so a change in the underlying
        data reads a different key; the TTL bounds how long any entry lives.

        Args:
            key: Logical cache key (operation and normalized parameters)
            version_fn: Async function returning the data version token
            compute_fn: Async function computing the value
            ttl: Time-to-live, the manager default when omitted
        """
        version = await version_fn()
        return await self.get_or_set(f"{key}:{version}", compute_fn, ttl)


# Pre-configured cache managers
analytics_cache = CacheManager(settings.analytics.cache_namespace, default_ttl=settings.analytics.cache_ttl_seconds)
dashboard_cache = CacheManager(settings.analytics.dashboard_cache_namespace, default_ttl=settings.analytics.cache_ttl_seconds)
