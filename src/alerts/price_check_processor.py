"""
Price Check Processor - consumer топика price-check

check-batch job: {"token_ids": [...]} → batch цены → evaluate по каждому
токену с ценой.
"""
from loguru import logger

from src.alerts.evaluator import AlertEvaluator
from src.prices.price_fetcher import PriceFetcher
from src.queue.job_queue import Job


class PriceCheckBatchError(Exception):
    """Оценка части токенов batch-а упала"""


class PriceCheckProcessor:
    """
    Обработчик check-batch jobs.

    Ошибка одного токена не мешает остальным; в конце job падает одной
    ошибкой, и очередь повторяет batch. Повтор безопасен: уже сработавшие
    правила отсекаются lock-ами и sent-markers.
    """

    def __init__(self, fetcher: PriceFetcher, evaluator: AlertEvaluator):
        self.fetcher = fetcher
        self.evaluator = evaluator

    async def handle(self, job: Job) -> int:
        """
        Returns:
            Количество поставленных уведомлений
        """
        token_ids = job.payload.get("token_ids") or []
        logger.info(f"Processing price check for {len(token_ids)} tokens")

        prices = await self.fetcher.get_batch_prices(token_ids)

        enqueued = 0
        failed = []
        for token_id, current_price in prices.items():
            try:
                notifications = await self.evaluator.evaluate(token_id, current_price)
                enqueued += len(notifications)
                logger.debug(f"Checked alerts for token {token_id} at price ${current_price}")
            except Exception as e:
                logger.error(f"Error checking alerts for token {token_id}: {e}")
                failed.append(token_id)

        logger.info(
            f"Completed price check: {len(prices)}/{len(token_ids)} priced, "
            f"{enqueued} alerts enqueued, {len(failed)} failed"
        )

        if failed:
            raise PriceCheckBatchError(f"Alert evaluation failed for tokens {failed}")

        return enqueued
