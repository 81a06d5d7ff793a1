"""
Tests for RedisManager graceful degradation and stats
"""

import pytest

from src.cache.redis_manager import RedisManager


@pytest.mark.asyncio
async def test_json_round_trip_and_stats(redis_manager, fake_redis):
    assert await redis_manager.set("price:1", {"price": 1.5, "timestamp": 1}, ttl=60) is True

    assert await redis_manager.get("price:1") == {"price": 1.5, "timestamp": 1}
    assert await redis_manager.get("price:2", default="none") == "none"
    assert await fake_redis.ttl("price:1") == 60

    stats = redis_manager.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


@pytest.mark.asyncio
async def test_plain_strings_are_stored_as_is(redis_manager, fake_redis):
    await redis_manager.set("k", "v")

    assert fake_redis.values["k"] == "v"
    assert await redis_manager.get("k") == "v"


@pytest.mark.asyncio
async def test_errors_degrade_to_defaults(redis_manager, fake_redis):
    fake_redis.fail = True

    assert await redis_manager.get("price:1") is None
    assert await redis_manager.set("price:1", {"price": 1}) is False
    assert redis_manager.get_stats()["errors"] == 2


@pytest.mark.asyncio
async def test_uninitialized_manager():
    manager = RedisManager()

    assert manager.is_available() is False
    assert await manager.get("x", default=0) == 0
    assert await manager.set_if_absent("lock", 10) is False
    with pytest.raises(RuntimeError):
        manager.client


@pytest.mark.asyncio
async def test_close_marks_unavailable(redis_manager):
    await redis_manager.close()

    assert redis_manager.is_available() is False
