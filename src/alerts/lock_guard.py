"""
Dedup lock guard

Короткий Redis lock между "условие выполнено" и "sent-marker записан".
Источник истины "уже отправлено" - timestamp в БД, lock только снижает
число дублей при параллельной оценке.
"""
from typing import Optional

from loguru import logger

from config.cache_config import CacheTTL
from src.cache.cache_keys import alert_lock_key
from src.cache.redis_manager import RedisManager
from src.core.enums import AlertKind


class LockGuard:
    """
    Usage:
        >>> guard = LockGuard(get_redis_manager())
        >>> await guard.try_acquire(guard.key_for(AlertKind.TP_REACHED, 7, "12"))
        True
    """

    def __init__(self, redis: RedisManager, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or CacheTTL.ALERT_LOCK

    @staticmethod
    def key_for(kind: AlertKind, user_id: int, rule_key: str) -> str:
        """alert:lock:<kind>:<userId>:<ruleKey>"""
        return alert_lock_key(AlertKind(kind).value, user_id, rule_key)

    async def try_acquire(self, lock_key: str) -> bool:
        """
        SET lock_key 1 NX EX ttl

        Returns:
            True только если этот вызов создал ключ. Ошибка Redis = False.
        """
        acquired = await self.redis.set_if_absent(lock_key, self.ttl_seconds)
        if not acquired:
            logger.debug(f"Alert lock already held: {lock_key}")
        return acquired
