# coding: utf-8
"""
Cache configuration for Redis TTL (Time To Live) settings

Prices are polled every minute by the alert scheduler, so the price cache
only has to absorb duplicate lookups inside a single polling cycle.
"""
import os


class CacheTTL:
    """
    Time-to-live (TTL) settings for different cache types in seconds
    """

    # ===========================
    # Price cache
    # ===========================

    PRICE = int(os.getenv("PRICE_CACHE_TTL_SECONDS", "60"))
    """Stored price entry - 60s (how long Redis keeps it)"""

    PRICE_FRESH = int(os.getenv("PRICE_CACHE_FRESH_SECONDS", "30"))
    """Usable-without-refetch window - 30s (older entries count as a miss)"""

    # ===========================
    # Alert locks
    # ===========================

    ALERT_LOCK = int(os.getenv("ALERT_LOCK_TTL_SECONDS", "300"))
    """Dedup lock for a fired alert rule - 5 minutes"""

    # ===========================
    # Default TTL
    # ===========================

    DEFAULT = int(os.getenv("CACHE_TTL_DEFAULT", "300"))
    """Default TTL for unspecified data - 5 minutes"""


class CacheConfig:
    """
    Redis connection and behavior configuration
    """

    # Redis connection
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    """Redis connection URL"""

    REDIS_MAX_CONNECTIONS = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))
    """Maximum connections in pool"""

    REDIS_SOCKET_TIMEOUT = int(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))
    """Socket timeout in seconds"""

    REDIS_SOCKET_CONNECT_TIMEOUT = int(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "5"))
    """Socket connect timeout in seconds"""

    # Cache behavior
    CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    """Enable/disable Redis (useful for debugging)"""

    CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "")
    """Optional namespace prefix for all keys (empty = bare keys)"""

    CACHE_KEY_SEPARATOR = ":"
    """Separator for cache key components"""

    CACHE_RAISE_ON_ERROR = os.getenv("CACHE_RAISE_ON_ERROR", "false").lower() == "true"
    """Raise exception if cache fails (false = graceful degradation)"""

    # Monitoring
    CACHE_LOG_HITS = os.getenv("CACHE_LOG_HITS", "false").lower() == "true"
    """Log cache hits (verbose, useful for debugging)"""

    CACHE_LOG_MISSES = os.getenv("CACHE_LOG_MISSES", "true").lower() == "true"
    """Log cache misses (important for monitoring)"""
