"""
Price Check Scheduler

APScheduler interval job: раз в PRICE_CHECK_INTERVAL_SECONDS найти
токены с живыми алертами и поставить check-batch jobs по 100 token ids.
Интервал читается один раз при старте процесса.
"""
from typing import List, Optional

from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.alerts_config import QueueConfig, SchedulerConfig
from src.alerts.registry import AlertRegistry
from src.prices.price_fetcher import chunked
from src.queue.job_queue import JobQueue


CHECK_BATCH_JOB = "check-batch"


class PriceCheckScheduler:
    """
    APScheduler для price-check.

    Jobs:
    - price_check_tick: registry → chunks → check-batch jobs
    """

    def __init__(
        self,
        registry: AlertRegistry,
        queue: JobQueue,
        interval_seconds: Optional[int] = None,
        batch_size: Optional[int] = None,
        queue_config: Optional[QueueConfig] = None,
    ):
        defaults = SchedulerConfig()
        self.registry = registry
        self.queue = queue
        self.interval_seconds = interval_seconds or defaults.interval_sec
        self.batch_size = batch_size or defaults.batch_size
        self.queue_config = queue_config or QueueConfig()
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Запустить scheduler."""
        if self._running:
            logger.warning("Price check scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id="price_check_tick",
            name="Price Check Tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True

        logger.info(f"✅ Price check scheduler started - checking prices every {self.interval_seconds}s")

    def stop(self):
        """Остановить scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            self._running = False
            logger.info("Price check scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    async def tick(self) -> List[List[int]]:
        """
        Один цикл: registry → check-batch jobs.

        Любая ошибка логируется и глотается, следующий tick запустится по расписанию.

        Returns:
            Поставленные batches (пусто при ошибке или отсутствии токенов)
        """
        logger.debug("Starting scheduled price check...")

        try:
            token_ids = await self.registry.get_watched_token_ids()

            if not token_ids:
                logger.debug("No active alerts found, skipping price check")
                return []

            batches = chunked(sorted(token_ids), self.batch_size)
            for batch in batches:
                await self.queue.enqueue(
                    self.queue_config.price_check_topic,
                    CHECK_BATCH_JOB,
                    {"token_ids": batch},
                )

            logger.info(
                f"Found {len(token_ids)} tokens with active alerts, "
                f"added {len(batches)} batch(es) to {self.queue_config.price_check_topic} queue"
            )
            return batches

        except Exception as e:
            logger.error(f"Error in scheduled price check: {e}")
            return []
