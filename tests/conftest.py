"""
Pytest configuration and fixtures for exStrat Alerts tests
"""

import fnmatch
from typing import AsyncGenerator, Dict, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.cache.redis_manager import RedisManager
from src.database import crud
from src.database.models import Base
from src.queue.job_queue import InMemoryJobQueue


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Manually advanced clock (seconds since epoch)"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """
    In-process stand-in for redis.asyncio.Redis (decode_responses=True)

    Covers the commands the worker uses. Expiry follows the injected clock.
    Set `fail = True` to make every command raise a connection error.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.fail = False
        self.values: Dict[str, str] = {}
        self.expires: Dict[str, float] = {}
        self.lists: Dict[str, list] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis is down")

    def _alive(self, key: str) -> bool:
        expires_at = self.expires.get(key)
        if expires_at is not None and expires_at <= self.clock():
            self.values.pop(key, None)
            self.expires.pop(key, None)
        return key in self.values

    async def ping(self):
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key) if self._alive(key) else None

    async def set(self, key: str, value, nx: bool = False, ex: Optional[int] = None):
        self._check()
        if nx and self._alive(key):
            return None
        self.values[key] = str(value)
        if ex is not None:
            self.expires[key] = self.clock() + ex
        else:
            self.expires.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value) -> bool:
        return await self.set(key, value, ex=ttl)

    async def ttl(self, key: str) -> int:
        self._check()
        if not self._alive(key):
            return -2
        if key not in self.expires:
            return -1
        return int(self.expires[key] - self.clock())

    async def lpush(self, key: str, *values) -> int:
        self._check()
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def lmove(self, first_list: str, second_list: str, src: str = "LEFT", dest: str = "RIGHT"):
        self._check()
        items = self.lists.get(first_list)
        if not items:
            return None
        value = items.pop(0) if src == "LEFT" else items.pop()
        target = self.lists.setdefault(second_list, [])
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def lrem(self, key: str, count: int, value) -> int:
        self._check()
        items = self.lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < abs(count)):
            items.remove(value)
            removed += 1
        return removed

    async def llen(self, key: str) -> int:
        self._check()
        return len(self.lists.get(key, []))

    async def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrangebyscore(self, key: str, min_score, max_score) -> list:
        self._check()
        zset = self.zsets.get(key, {})
        members = [(score, member) for member, score in zset.items() if min_score <= score <= max_score]
        return [member for _, member in sorted(members)]

    async def zrem(self, key: str, *members) -> int:
        self._check()
        zset = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        return removed

    def keys_matching(self, pattern: str) -> list:
        return [key for key in list(self.values) if self._alive(key) and fnmatch.fnmatch(key, pattern)]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock) -> FakeRedis:
    return FakeRedis(fake_clock)


@pytest.fixture
def redis_manager(fake_redis) -> RedisManager:
    return RedisManager(client=fake_redis)


@pytest.fixture
def job_queue(fake_clock) -> InMemoryJobQueue:
    return InMemoryJobQueue(clock=fake_clock)


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(test_db_engine) -> async_sessionmaker[AsyncSession]:
    """
    Session maker bound to the test engine (what pipeline components receive)
    """
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_step_alert(db_session):
    """
    Factory: user + token + strategy with one step + active strategy alert + step alert

    Returns dict with the created rows.
    """

    async def _make(
        target_price: float = 100.0,
        symbol: str = "BTC",
        cmc_id: int = 1,
        before_tp_enabled: bool = True,
        before_tp_percentage: Optional[float] = 2.0,
        tp_reached_enabled: bool = True,
        email_enabled: bool = True,
        strategy_alert_active: bool = True,
        extra_targets: tuple = (),
        email: str = "alice@example.com",
    ) -> dict:
        user = await crud.create_user(db_session, email=email, first_name="Alice")
        token, _ = await crud.get_or_create_token(db_session, cmc_id=cmc_id, symbol=symbol)
        steps = [{"target_type": "exact_price", "target_value": target_price, "sell_percentage": 25}]
        steps += [
            {"target_type": "exact_price", "target_value": price, "sell_percentage": 25}
            for price in extra_targets
        ]
        strategy = await crud.create_strategy(
            db_session,
            user_id=user.id,
            name=f"{symbol} exit plan",
            asset=symbol,
            reference_price=target_price / 2,
            steps=steps,
            token_cmc_id=cmc_id,
        )
        await crud.upsert_strategy_alert(
            db_session,
            strategy.id,
            is_active=strategy_alert_active,
            notification_channels={"email": email_enabled, "push": False},
        )
        step = next(s for s in strategy.steps if s.target_price == target_price)
        step_alert = await crud.create_step_alert(
            db_session,
            step.id,
            before_tp_enabled=before_tp_enabled,
            before_tp_percentage=before_tp_percentage,
            tp_reached_enabled=tp_reached_enabled,
        )
        return {
            "user": user,
            "token": token,
            "strategy": strategy,
            "step": step,
            "step_alert": step_alert,
        }

    return _make
