"""
exStrat Alerts - Worker Entry Point

Один процесс: price-check scheduler + consumers топиков price-check и send-email.
"""

import asyncio
import signal
import sys

from loguru import logger

from config.alerts_config import get_config
from config.config import validate_config
from config.logging import setup_logging
from config.sentry import init_sentry
from src.alerts import (
    AlertEvaluator,
    AlertRegistry,
    LockGuard,
    NotificationDispatcher,
    PriceCheckProcessor,
    PriceCheckScheduler,
)
from src.cache import get_redis_manager
from src.database.engine import dispose_engine, get_session_maker
from src.prices import PriceCache, PriceFetcher
from src.queue import JobWorker, RedisJobQueue
from src.services.coinmarketcap_service import CoinMarketCapService
from src.services.email_service import ResendEmailService


async def main() -> None:
    """Main worker function"""

    setup_logging()
    init_sentry()

    try:
        validate_config()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    logger.info("Configuration validated successfully")

    config = get_config()
    redis = get_redis_manager()
    if not await redis.initialize():
        logger.error("Redis is required for the job queue and alert locks")
        sys.exit(1)

    session_maker = get_session_maker()
    queue = RedisJobQueue(redis, config=config.queue)

    fetcher = PriceFetcher(
        PriceCache(
            redis,
            ttl_seconds=config.prices.cache_ttl_sec,
            fresh_seconds=config.prices.cache_fresh_sec,
        ),
        CoinMarketCapService(),
        config.prices,
    )
    evaluator = AlertEvaluator(
        session_maker,
        LockGuard(redis, config.locks.ttl_sec),
        queue,
        config.queue,
    )
    processor = PriceCheckProcessor(fetcher, evaluator)
    dispatcher = NotificationDispatcher(session_maker, ResendEmailService())

    scheduler = PriceCheckScheduler(
        AlertRegistry(session_maker),
        queue,
        interval_seconds=config.scheduler.interval_sec,
        batch_size=config.scheduler.batch_size,
        queue_config=config.queue,
    )
    workers = [
        JobWorker(queue, config.queue.price_check_topic, processor.handle, config.queue),
        JobWorker(queue, config.queue.email_topic, dispatcher.handle, config.queue),
    ]

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        for worker in workers:
            worker.start()
        scheduler.start()

        logger.info("🚀 exStrat alerts worker started")
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        scheduler.stop()
        for worker in workers:
            await worker.stop()

        logger.info(f"Redis stats: {redis.get_stats()}")
        await redis.close()
        await dispose_engine()
        logger.info("Database connections closed")


def run() -> None:
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
