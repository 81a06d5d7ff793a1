"""
Job Queue - at-least-once delivery для price-check и send-email jobs

Топики:
- price-check: check-batch {"token_ids": [...]}
- send-email: send-alert {user_id, alert_id, kind, ...}

Job, который бросил исключение, возвращается в очередь с экспоненциальной
задержкой. После max_attempts попыток он уходит в dead-letter список.

Реализации:
- RedisJobQueue: LIST на топик (LPUSH + LMOVE в :processing), ZSET для
  отложенных retry, LIST для dead-letter. Job лежит в :processing, пока
  worker не вызовет ack(), поэтому падение процесса его не теряет.
- InMemoryJobQueue: тесты и локальный запуск без Redis
"""
import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from loguru import logger
from redis.exceptions import RedisError

from config.alerts_config import QueueConfig
from config.sentry import capture_exception
from src.cache.cache_keys import queue_key
from src.cache.redis_manager import RedisManager


class JobQueueError(Exception):
    """Queue backend недоступен"""


@dataclass
class Job:
    """Единица работы в очереди."""
    topic: str
    name: str
    payload: dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0
    last_error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        return cls(**json.loads(raw))


JobHandler = Callable[[Job], Awaitable[Any]]


def retry_delay(attempts: int, config: QueueConfig) -> float:
    """
    Задержка перед следующей попыткой

    Examples:
        >>> retry_delay(1, QueueConfig(backoff_sec=5))
        5.0
        >>> retry_delay(3, QueueConfig(backoff_sec=5))
        20.0
    """
    return float(min(config.backoff_sec * 2 ** (attempts - 1), config.max_backoff_sec))


class JobQueue(ABC):
    """Интерфейс очереди."""

    @abstractmethod
    async def enqueue(
        self, topic: str, name: str, payload: dict, job_id: Optional[str] = None
    ) -> Job:
        """Добавить job в топик."""

    @abstractmethod
    async def reserve(self, topic: str) -> Optional[Job]:
        """Забрать следующий готовый job (или None)."""

    @abstractmethod
    async def schedule_retry(self, job: Job, delay_sec: float) -> None:
        """Вернуть job в очередь через delay_sec."""

    @abstractmethod
    async def dead_letter(self, job: Job) -> None:
        """Отложить job, исчерпавший попытки."""

    async def ack(self, job: Job) -> None:
        """Job обработан (успех, retry или dead-letter), убрать из in-flight."""

    async def recover(self, topic: str) -> int:
        """Вернуть в очередь jobs, оставшиеся in-flight после падения процесса."""
        return 0


class InMemoryJobQueue(JobQueue):
    """Очередь в памяти процесса."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._ready: Dict[str, Deque[Job]] = {}
        self._delayed: Dict[str, List[Tuple[float, Job]]] = {}
        self.dead: Dict[str, List[Job]] = {}

    async def enqueue(
        self, topic: str, name: str, payload: dict, job_id: Optional[str] = None
    ) -> Job:
        job = Job(topic=topic, name=name, payload=payload)
        if job_id:
            job.id = job_id
        self._ready.setdefault(topic, deque()).append(job)
        return job

    async def reserve(self, topic: str) -> Optional[Job]:
        now = self._clock()
        delayed = self._delayed.get(topic, [])
        due = [item for item in delayed if item[0] <= now]
        if due:
            self._delayed[topic] = [item for item in delayed if item[0] > now]
            ready = self._ready.setdefault(topic, deque())
            for _, job in sorted(due, key=lambda item: item[0]):
                ready.append(job)

        ready = self._ready.get(topic)
        if not ready:
            return None
        return ready.popleft()

    async def schedule_retry(self, job: Job, delay_sec: float) -> None:
        self._delayed.setdefault(job.topic, []).append((self._clock() + delay_sec, job))

    async def dead_letter(self, job: Job) -> None:
        self.dead.setdefault(job.topic, []).append(job)

    def pending(self, topic: str) -> List[Job]:
        """Готовые jobs топика, в порядке выдачи."""
        return list(self._ready.get(topic, ()))

    def delayed(self, topic: str) -> List[Job]:
        """Отложенные retry топика."""
        return [job for _, job in self._delayed.get(topic, [])]


class RedisJobQueue(JobQueue):
    """
    Очередь поверх Redis.

    Keys:
        queue:<topic>              LIST, LPUSH + LMOVE RIGHT = FIFO
        queue:<topic>:processing   LIST, reserved jobs until ack
        queue:<topic>:delayed      ZSET, score = unix time готовности
        queue:<topic>:dead         LIST
    """

    def __init__(
        self,
        redis: RedisManager,
        clock: Callable[[], float] = time.time,
        config: Optional[QueueConfig] = None,
    ):
        self.redis = redis
        self._clock = clock
        self._prefix = (config or QueueConfig()).key_prefix
        # job.id -> raw value in :processing (LREM needs the exact string)
        self._in_flight: Dict[str, str] = {}

    def _key(self, topic: str, suffix: str = "") -> str:
        return queue_key(topic, suffix, prefix=self._prefix)

    async def enqueue(
        self, topic: str, name: str, payload: dict, job_id: Optional[str] = None
    ) -> Job:
        job = Job(topic=topic, name=name, payload=payload)
        if job_id:
            job.id = job_id
        try:
            await self.redis.client.lpush(self._key(topic), job.to_json())
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to enqueue {topic}/{name}: {e}") from e
        return job

    async def _promote_due(self, topic: str) -> None:
        delayed_key = self._key(topic, "delayed")
        client = self.redis.client
        due = await client.zrangebyscore(delayed_key, 0, self._clock())
        for raw in due:
            # ZREM решает гонку между consumer-ами: переносит только тот, кто удалил
            if await client.zrem(delayed_key, raw):
                await client.lpush(self._key(topic), raw)

    async def reserve(self, topic: str) -> Optional[Job]:
        try:
            await self._promote_due(topic)
            raw = await self.redis.client.lmove(
                self._key(topic), self._key(topic, "processing"), "RIGHT", "LEFT"
            )
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to reserve from {topic}: {e}") from e

        if raw is None:
            return None
        try:
            job = Job.from_json(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Dropping malformed job in {topic}: {e}")
            await self._remove_processing(topic, raw)
            return None

        self._in_flight[job.id] = raw
        return job

    async def _remove_processing(self, topic: str, raw: str) -> None:
        try:
            await self.redis.client.lrem(self._key(topic, "processing"), 1, raw)
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to ack job in {topic}: {e}") from e

    async def schedule_retry(self, job: Job, delay_sec: float) -> None:
        try:
            await self.redis.client.zadd(
                self._key(job.topic, "delayed"), {job.to_json(): self._clock() + delay_sec}
            )
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to schedule retry for job {job.id}: {e}") from e

    async def dead_letter(self, job: Job) -> None:
        try:
            await self.redis.client.lpush(self._key(job.topic, "dead"), job.to_json())
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to dead-letter job {job.id}: {e}") from e

    async def ack(self, job: Job) -> None:
        raw = self._in_flight.pop(job.id, None)
        if raw is not None:
            await self._remove_processing(job.topic, raw)

    async def recover(self, topic: str) -> int:
        """
        Перенести всё из :processing обратно в очередь

        Вызывается при старте consumer-а: in-flight jobs прошлого процесса
        обрабатываются повторно (at-least-once).
        """
        recovered = 0
        try:
            while await self.redis.client.lmove(
                self._key(topic, "processing"), self._key(topic), "RIGHT", "RIGHT"
            ):
                recovered += 1
        except (RedisError, RuntimeError) as e:
            raise JobQueueError(f"Failed to recover in-flight jobs of {topic}: {e}") from e

        if recovered:
            logger.warning(f"Requeued {recovered} in-flight job(s) of {topic}")
        return recovered


class JobWorker:
    """
    Consumer одного топика.

    Handler вызывается для каждого job; исключение = retry с backoff,
    после max_attempts = dead-letter.
    """

    def __init__(
        self,
        queue: JobQueue,
        topic: str,
        handler: JobHandler,
        config: Optional[QueueConfig] = None,
    ):
        self.queue = queue
        self.topic = topic
        self.handler = handler
        self.config = config or QueueConfig()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def process_next(self) -> bool:
        """
        Обработать один job.

        Returns:
            True если job был в очереди
        """
        job = await self.queue.reserve(self.topic)
        if job is None:
            return False

        job.attempts += 1
        try:
            await self.handler(job)
        except Exception as e:
            job.last_error = str(e)
            if job.attempts >= self.config.max_attempts:
                logger.error(
                    f"Job {self.topic}/{job.name} {job.id} failed after {job.attempts} attempts: {e}"
                )
                capture_exception(e, topic=self.topic, job_name=job.name, job_id=job.id)
                await self.queue.dead_letter(job)
            else:
                delay = retry_delay(job.attempts, self.config)
                logger.warning(
                    f"Job {self.topic}/{job.name} {job.id} failed "
                    f"(attempt {job.attempts}/{self.config.max_attempts}), retry in {delay:.0f}s: {e}"
                )
                await self.queue.schedule_retry(job, delay)

        await self.queue.ack(job)
        return True

    async def drain(self) -> int:
        """Обработать все готовые jobs. Returns: количество."""
        processed = 0
        while await self.process_next():
            processed += 1
        return processed

    async def _run(self):
        try:
            await self.queue.recover(self.topic)
        except JobQueueError as e:
            logger.error(f"Could not recover in-flight {self.topic} jobs: {e}")

        while self._running:
            try:
                if await self.process_next():
                    continue
            except JobQueueError as e:
                logger.error(f"Queue error in {self.topic} worker: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error in {self.topic} worker: {e}")
            await asyncio.sleep(self.config.poll_interval_sec)

    def start(self):
        """Запустить polling loop."""
        if self._running:
            logger.warning(f"{self.topic} worker already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"job-worker-{self.topic}")
        logger.info(f"Job worker started: {self.topic}")

    async def stop(self):
        """Остановить loop, дождавшись текущего job."""
        self._running = False
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self.config.poll_interval_sec + 30)
            except asyncio.TimeoutError:
                self._task.cancel()
            self._task = None
            logger.info(f"Job worker stopped: {self.topic}")
