# coding: utf-8
"""
Cache module for Redis integration

Shared Redis access for the price cache, alert locks and job queue.
"""

from src.cache.redis_manager import RedisManager, get_redis_manager
from src.cache.cache_keys import CacheKeyBuilder, price_key, alert_lock_key, queue_key

__all__ = [
    "RedisManager",
    "get_redis_manager",
    "CacheKeyBuilder",
    "price_key",
    "alert_lock_key",
    "queue_key",
]
