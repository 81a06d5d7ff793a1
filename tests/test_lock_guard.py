"""
Tests for LockGuard (SET NX EX dedup locks)
"""

import asyncio

import pytest

from src.alerts.lock_guard import LockGuard
from src.core.enums import AlertKind


@pytest.fixture
def guard(redis_manager):
    return LockGuard(redis_manager, ttl_seconds=300)


def test_key_shape():
    assert LockGuard.key_for(AlertKind.BEFORE_TP, 7, "12") == "alert:lock:beforeTP:7:12"
    assert LockGuard.key_for(AlertKind.TP_REACHED, 7, "tp-3") == "alert:lock:tpReached:7:tp-3"


@pytest.mark.asyncio
async def test_acquire_is_exclusive(guard):
    """Two concurrent acquisitions of one key: exactly one wins"""
    key = LockGuard.key_for(AlertKind.TP_REACHED, 1, "1")

    results = await asyncio.gather(guard.try_acquire(key), guard.try_acquire(key))

    assert sorted(results) == [False, True]


@pytest.mark.asyncio
async def test_lock_expires_after_ttl(guard, fake_clock, fake_redis):
    key = LockGuard.key_for(AlertKind.BEFORE_TP, 1, "1")

    assert await guard.try_acquire(key) is True
    assert await fake_redis.ttl(key) == 300

    fake_clock.advance(299)
    assert await guard.try_acquire(key) is False

    fake_clock.advance(1)
    assert await guard.try_acquire(key) is True


@pytest.mark.asyncio
async def test_kinds_lock_independently(guard):
    assert await guard.try_acquire(LockGuard.key_for(AlertKind.BEFORE_TP, 1, "1")) is True
    assert await guard.try_acquire(LockGuard.key_for(AlertKind.TP_REACHED, 1, "1")) is True


@pytest.mark.asyncio
async def test_redis_error_fails_closed(guard, fake_redis, redis_manager):
    fake_redis.fail = True

    assert await guard.try_acquire("alert:lock:tpReached:1:1") is False
    assert redis_manager.get_stats()["locks_rejected"] == 1
