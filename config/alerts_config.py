"""
Alerts Pipeline Configuration

Defaults для price-check scheduler, price fetcher, locks, job queue.
Значения читаются из окружения один раз при старте процесса.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from config.cache_config import CacheTTL


@dataclass
class SchedulerConfig:
    """Периодический поиск токенов с активными алертами."""
    interval_sec: int = int(os.getenv("PRICE_CHECK_INTERVAL_SECONDS", "60"))
    batch_size: int = 100           # token ids на один check-batch job


@dataclass
class PriceFetchConfig:
    """Batch fetch цен у провайдера."""
    batch_size: int = int(os.getenv("PRICE_FETCH_BATCH_SIZE", "100"))
    batch_delay_ms: int = int(os.getenv("PRICE_FETCH_BATCH_DELAY_MS", "100"))
    cache_ttl_sec: int = CacheTTL.PRICE
    cache_fresh_sec: int = CacheTTL.PRICE_FRESH


@dataclass
class LockConfig:
    """Dedup lock между 'условие выполнено' и 'sent-marker записан'."""
    ttl_sec: int = CacheTTL.ALERT_LOCK


@dataclass
class RuleConfig:
    """Параметры правил beforeTP / tpReached."""
    before_tp_default_percentage: float = float(
        os.getenv("BEFORE_TP_DEFAULT_PERCENTAGE", "2")
    )


@dataclass
class QueueConfig:
    """Job queue: топики, retry, polling."""
    price_check_topic: str = "price-check"
    email_topic: str = "send-email"
    max_attempts: int = int(os.getenv("QUEUE_MAX_ATTEMPTS", "5"))
    backoff_sec: float = float(os.getenv("QUEUE_BACKOFF_SECONDS", "5"))
    max_backoff_sec: float = 300.0
    poll_interval_sec: float = 1.0
    key_prefix: str = os.getenv("QUEUE_KEY_PREFIX", "queue")


@dataclass
class AlertsConfig:
    """Главная конфигурация alerts pipeline."""
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    prices: PriceFetchConfig = field(default_factory=PriceFetchConfig)
    locks: LockConfig = field(default_factory=LockConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)


_config: Optional[AlertsConfig] = None


def get_config() -> AlertsConfig:
    """Получить singleton конфигурации."""
    global _config
    if _config is None:
        _config = AlertsConfig()
    return _config
