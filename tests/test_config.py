"""
Unit tests for configuration
"""

import pytest

import config.config as cfg
from config.alerts_config import AlertsConfig, get_config
from config.cache_config import CacheTTL


def test_alerts_config_defaults():
    """Test pipeline defaults"""
    config = AlertsConfig()

    assert config.scheduler.batch_size == 100
    assert config.queue.price_check_topic == "price-check"
    assert config.queue.email_topic == "send-email"
    assert config.prices.cache_ttl_sec == CacheTTL.PRICE
    assert config.prices.cache_fresh_sec == CacheTTL.PRICE_FRESH
    assert config.locks.ttl_sec == CacheTTL.ALERT_LOCK
    assert config.prices.cache_fresh_sec <= config.prices.cache_ttl_sec


def test_get_config_is_singleton():
    assert get_config() is get_config()


def test_validate_config_requires_provider_key(monkeypatch):
    monkeypatch.setattr(cfg, "COINMARKETCAP_API_KEY", "")

    with pytest.raises(ValueError, match="COINMARKETCAP_API_KEY"):
        cfg.validate_config()

    monkeypatch.setattr(cfg, "COINMARKETCAP_API_KEY", "key")
    monkeypatch.setattr(cfg, "DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(cfg, "REDIS_URL", "redis://localhost:6379/0")
    assert cfg.validate_config() is True
