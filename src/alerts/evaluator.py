"""
Alert Evaluator - проверка правил одного токена по текущей цене

Для каждого правила (step alert или TP alert):
- beforeTP: before_price <= p < target
- tpReached: p >= target
Сработавшее условие → dedup lock → send-alert job (только если lock новый).
"""
from typing import List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.alerts_config import QueueConfig
from src.alerts.lock_guard import LockGuard
from src.alerts.rules import AlertNotification, AlertRule
from src.database import crud
from src.queue.job_queue import JobQueue


SEND_ALERT_JOB = "send-alert"


class AlertEvaluator:
    """Оценка всех правил токена."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        lock_guard: LockGuard,
        queue: JobQueue,
        queue_config: Optional[QueueConfig] = None,
    ):
        self.session_maker = session_maker
        self.lock_guard = lock_guard
        self.queue = queue
        self.queue_config = queue_config or QueueConfig()

    async def load_rules(self, token_id: int) -> List[AlertRule]:
        """
        Все правила для токена (пустой список если токена нет в таблице tokens).
        """
        async with self.session_maker() as session:
            token = await crud.get_token_by_cmc_id(session, token_id)
            if token is None:
                logger.debug(f"Token {token_id} not found, skipping evaluation")
                return []

            step_alerts = await crud.get_step_alerts_for_symbol(session, token.symbol)
            tp_alerts = await crud.get_tp_alerts_for_symbol(session, token.symbol)

            rules = [AlertRule.from_step_alert(sa) for sa in step_alerts]
            rules += [AlertRule.from_tp_alert(tp) for tp in tp_alerts]

        return rules

    async def evaluate(self, token_id: int, current_price: float) -> List[AlertNotification]:
        """
        Проверить правила токена и поставить email jobs

        Ошибка одного правила не останавливает остальные. Ошибка загрузки
        правил пробрасывается (retry всего batch job).

        Returns:
            Поставленные в очередь уведомления
        """
        try:
            rules = await self.load_rules(token_id)
        except Exception as e:
            logger.error(f"Error loading alert rules for token {token_id}: {e}")
            raise

        if not rules:
            logger.debug(f"No active alert rules for token {token_id}")
            return []

        notifications: List[AlertNotification] = []
        for rule in rules:
            try:
                notifications.extend(await self._evaluate_rule(rule, current_price))
            except Exception as e:
                logger.error(
                    f"Error evaluating {rule.source.value} alert {rule.rule_id} "
                    f"for token {token_id}: {e}"
                )

        return notifications

    async def _evaluate_rule(
        self, rule: AlertRule, current_price: float
    ) -> List[AlertNotification]:
        enqueued = []
        for kind in rule.fired_kinds(current_price):
            lock_key = self.lock_guard.key_for(kind, rule.user_id, rule.lock_rule_key)
            if not await self.lock_guard.try_acquire(lock_key):
                continue

            notification = AlertNotification(rule=rule, kind=kind, current_price=current_price)
            await self.queue.enqueue(
                self.queue_config.email_topic, SEND_ALERT_JOB, notification.to_payload()
            )
            enqueued.append(notification)

            logger.info(
                f"{kind.value} triggered: {rule.symbol} TP{rule.order} "
                f"({rule.source.value} alert {rule.rule_id}, user {rule.user_id}) "
                f"${current_price} vs target ${rule.target_price}"
            )

        return enqueued
