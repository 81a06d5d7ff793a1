# coding: utf-8
"""
Price cache - short-lived USD prices in Redis

Entry under ``price:<cmcId>``: ``{"price": float, "timestamp": epoch_ms}``,
stored with SETEX (CacheTTL.PRICE). An entry older than
CacheTTL.PRICE_FRESH counts as a miss even though Redis still holds it.
"""
import time
from typing import Callable, Optional

from loguru import logger

from config.cache_config import CacheTTL
from src.cache.cache_keys import price_key
from src.cache.redis_manager import RedisManager


class PriceCache:
    """
    Usage:
        >>> cache = PriceCache(get_redis_manager())
        >>> await cache.put(1, 67000.0)
        >>> await cache.get(1)
        67000.0
    """

    def __init__(
        self,
        redis: RedisManager,
        ttl_seconds: int = CacheTTL.PRICE,
        fresh_seconds: int = CacheTTL.PRICE_FRESH,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.fresh_seconds = fresh_seconds
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def get(self, token_id: int) -> Optional[float]:
        """
        Cached price if present and fresh

        Returns:
            Price, or None on absence, staleness, malformed entry or Redis failure
        """
        entry = await self.redis.get(price_key(token_id))
        if not isinstance(entry, dict):
            return None

        try:
            price = float(entry["price"])
            age_ms = self._now_ms() - int(entry["timestamp"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Malformed price cache entry for token {token_id}: {entry!r}")
            return None

        if age_ms < self.fresh_seconds * 1000:
            logger.debug(f"Price cache hit for token {token_id} (age: {age_ms}ms)")
            return price
        return None

    async def put(self, token_id: int, price: float, ttl: Optional[int] = None) -> bool:
        """
        Store price stamped with the current time

        Returns:
            True if written
        """
        entry = {"price": float(price), "timestamp": self._now_ms()}
        return await self.redis.set(price_key(token_id), entry, ttl=ttl or self.ttl_seconds)
