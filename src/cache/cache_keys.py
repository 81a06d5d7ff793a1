# coding: utf-8
"""
Redis key generation

Key layout:
    price:<cmcId>                                   cached USD price
    alert:lock:<kind>:<userId>:<ruleKey>            dedup lock per fired rule
    queue:<topic>[:delayed|:dead]                   job queue structures

An optional CACHE_NAMESPACE is prepended to every key.
"""
from typing import Union

from config.cache_config import CacheConfig


class CacheKeyBuilder:
    """
    Utility class for building consistent Redis keys

    Examples:
        >>> CacheKeyBuilder.build("price", 1)
        'price:1'
        >>> CacheKeyBuilder.build("alert", "lock", "tpReached", 7, 12)
        'alert:lock:tpReached:7:12'
    """

    SEPARATOR = CacheConfig.CACHE_KEY_SEPARATOR
    NAMESPACE = CacheConfig.CACHE_NAMESPACE

    @classmethod
    def build(cls, *parts: Union[str, int]) -> str:
        """Join key parts, prefixed with the namespace when one is configured"""
        key_parts = [str(part) for part in parts]
        if cls.NAMESPACE:
            key_parts.insert(0, cls.NAMESPACE)
        return cls.SEPARATOR.join(key_parts)


def price_key(token_id: int) -> str:
    """Build price cache key"""
    return CacheKeyBuilder.build("price", token_id)


def alert_lock_key(kind: str, user_id: int, rule_key: Union[str, int]) -> str:
    """
    Build dedup lock key

    Args:
        kind: beforeTP / tpReached
        user_id: Rule owner
        rule_key: Step alert id, or "tp-<id>" for TP alerts
    """
    return CacheKeyBuilder.build("alert", "lock", kind, user_id, rule_key)


def queue_key(topic: str, suffix: str = "", prefix: str = "queue") -> str:
    """Build job queue key (ready list, or :processing / :delayed / :dead structures)"""
    if suffix:
        return CacheKeyBuilder.build(prefix, topic, suffix)
    return CacheKeyBuilder.build(prefix, topic)
