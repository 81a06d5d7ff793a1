# coding: utf-8
"""
Redis Manager for the alerts worker

One async Redis client shared by the price cache, alert locks and job queue.
Reads and writes degrade gracefully when Redis is down. The atomic
set-if-absent primitive fails closed instead.
"""
import json
from typing import Any, Optional, Union

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError
from loguru import logger

from config.cache_config import CacheConfig, CacheTTL


class RedisManager:
    """
    Centralized Redis manager with connection pooling

    Features:
    - Async Redis operations
    - Graceful degradation for cache reads/writes
    - Fail-closed SET NX EX for locks
    - JSON serialization
    - Hit/miss/error statistics

    Usage:
        >>> redis_mgr = RedisManager()
        >>> await redis_mgr.initialize()
        >>> await redis_mgr.set("price:1", {"price": 50000.0, "timestamp": 0}, ttl=60)
        >>> data = await redis_mgr.get("price:1")
        >>> await redis_mgr.close()

    Tests pass a ready client (``RedisManager(client=fake)``) and skip
    ``initialize()``.
    """

    def __init__(self, client: Optional[Redis] = None):
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self._is_available = client is not None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
            "sets": 0,
            "locks_acquired": 0,
            "locks_rejected": 0,
        }

    async def initialize(self) -> bool:
        """
        Initialize Redis connection pool

        Returns:
            True if Redis is available, False otherwise
        """
        if self._client is not None and self._pool is None:
            # Injected client
            self._is_available = True
            return True

        if not CacheConfig.CACHE_ENABLED:
            logger.info("Redis is disabled in configuration")
            return False

        try:
            url = CacheConfig.REDIS_URL

            self._pool = ConnectionPool.from_url(
                url,
                max_connections=CacheConfig.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                socket_connect_timeout=CacheConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=CacheConfig.REDIS_SOCKET_TIMEOUT,
            )
            self._client = Redis(connection_pool=self._pool)

            await self._client.ping()

            self._is_available = True
            logger.info(
                f"Redis initialized (max_connections={CacheConfig.REDIS_MAX_CONNECTIONS})"
            )
            return True

        except RedisConnectionError as e:
            logger.warning(f"Redis connection failed: {e}. Prices will not be cached, alerts will not fire.")
            self._is_available = False
            return False

        except Exception as e:
            logger.error(f"Unexpected error initializing Redis: {e}")
            self._is_available = False
            return False

    async def close(self):
        """Close Redis connections gracefully"""
        if self._client and self._pool:
            try:
                await self._client.aclose()  # type: ignore
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")

        if self._pool:
            try:
                await self._pool.aclose()  # type: ignore
                logger.debug("Redis connection pool closed")
            except Exception as e:
                logger.error(f"Error closing Redis pool: {e}")
            self._pool = None
            self._client = None

        self._is_available = False

    @property
    def client(self) -> Redis:
        """
        Raw client for structures the manager does not wrap (queue lists, sorted sets)

        Raises:
            RuntimeError: If Redis is not initialized
        """
        if self._client is None:
            raise RuntimeError("Redis is not initialized")
        return self._client

    async def get(
        self, key: str, default: Any = None
    ) -> Optional[Union[str, dict, list]]:
        """
        Get value from cache

        Args:
            key: Cache key
            default: Default value if key not found or Redis failed

        Returns:
            Cached value (deserialized from JSON) or default

        Examples:
            >>> await redis_mgr.get("price:1")
            {"price": 50000.0, "timestamp": 1700000000000}
        """
        if not self._is_available:
            return default

        try:
            value = await self._client.get(key)  # type: ignore

            if value is None:
                self._stats["misses"] += 1
                if CacheConfig.CACHE_LOG_MISSES:
                    logger.debug(f"Cache MISS: {key}")
                return default

            try:
                deserialized = json.loads(value)
            except json.JSONDecodeError:
                deserialized = value

            self._stats["hits"] += 1
            if CacheConfig.CACHE_LOG_HITS:
                logger.debug(f"Cache HIT: {key}")
            return deserialized

        except RedisError as e:
            self._stats["errors"] += 1
            logger.warning(f"Redis GET error for key '{key}': {e}")
            if CacheConfig.CACHE_RAISE_ON_ERROR:
                raise
            return default

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Set value with TTL (SETEX)

        Args:
            key: Cache key
            value: Value to store (JSON-serialized unless already a string)
            ttl: Time-to-live in seconds (default: CacheTTL.DEFAULT)

        Returns:
            True if successful, False otherwise
        """
        if not self._is_available:
            return False

        if ttl is None:
            ttl = CacheTTL.DEFAULT

        try:
            if isinstance(value, str):
                serialized = value
            else:
                serialized = json.dumps(value, ensure_ascii=False)

            await self._client.setex(key, ttl, serialized)  # type: ignore
            self._stats["sets"] += 1
            logger.debug(f"Cache SET: {key} (TTL={ttl}s)")
            return True

        except RedisError as e:
            self._stats["errors"] += 1
            logger.warning(f"Redis SET error for key '{key}': {e}")
            if CacheConfig.CACHE_RAISE_ON_ERROR:
                raise
            return False

    async def set_if_absent(self, key: str, ttl: int, value: str = "1") -> bool:
        """
        Atomic SET key value NX EX ttl

        Args:
            key: Key to claim
            ttl: Expiry in seconds
            value: Stored value

        Returns:
            True only if this call created the key. Redis errors and an
            unavailable Redis both return False.
        """
        if not self._is_available:
            self._stats["locks_rejected"] += 1
            logger.warning(f"Redis unavailable, refusing SET NX for '{key}'")
            return False

        try:
            created = await self._client.set(key, value, nx=True, ex=ttl)  # type: ignore
        except RedisError as e:
            self._stats["errors"] += 1
            self._stats["locks_rejected"] += 1
            logger.error(f"Redis SET NX error for key '{key}': {e}")
            return False

        if created:
            self._stats["locks_acquired"] += 1
            return True

        self._stats["locks_rejected"] += 1
        return False

    def get_stats(self) -> dict:
        """
        Get cache statistics

        Examples:
            >>> redis_mgr.get_stats()
            {"hits": 100, "misses": 20, "errors": 1, "hit_rate": 0.83, ...}
        """
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total if total > 0 else 0

        return {
            **self._stats,
            "total_requests": total,
            "hit_rate": round(hit_rate, 2),
            "is_available": self._is_available,
        }

    def is_available(self) -> bool:
        """Check if Redis is available"""
        return self._is_available


# Global Redis manager instance
_redis_manager: Optional[RedisManager] = None


def get_redis_manager() -> RedisManager:
    """
    Get global Redis manager instance (singleton)

    Examples:
        >>> redis_mgr = get_redis_manager()
        >>> await redis_mgr.initialize()
    """
    global _redis_manager
    if _redis_manager is None:
        _redis_manager = RedisManager()
    return _redis_manager
