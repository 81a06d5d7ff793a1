"""
Notification Dispatcher - consumer топика send-email

send-alert job:
1. sent-marker уже записан → skip (главная проверка идемпотентности)
2. user / strategy → email
3. только после успешной отправки записать sent-marker
   (для step tpReached шаг переходит в triggered)
Ошибка отправки пробрасывается, job queue повторит.
"""
from datetime import datetime, UTC
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.enums import AlertKind, RuleSource
from src.database import crud
from src.queue.job_queue import Job
from src.services.email_service import ResendEmailService
from src.services.email_templates import render_alert_email


class NotificationDispatcher:
    """Обработчик send-alert jobs."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        email_service: ResendEmailService,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_maker = session_maker
        self.email_service = email_service
        self._clock = clock

    async def handle(self, job: Job) -> bool:
        """
        Returns:
            True если email отправлен, False если job пропущен
        """
        payload = job.payload
        kind = AlertKind(payload["kind"])
        source = RuleSource(payload.get("source", RuleSource.STEP.value))
        alert_id = payload["alert_id"]

        logger.info(
            f"Processing {kind.value} email for user {payload['user_id']}, "
            f"{source.value} alert {alert_id}"
        )

        async with self.session_maker() as session:
            if source == RuleSource.STEP:
                alert = await crud.get_step_alert(session, alert_id)
            else:
                alert = await crud.get_tp_alert(session, alert_id)

            if alert is None:
                logger.warning(f"{source.value} alert {alert_id} not found, skipping")
                return False

            sent_at = (
                alert.before_tp_email_sent_at
                if kind == AlertKind.BEFORE_TP
                else alert.tp_reached_email_sent_at
            )
            if sent_at is not None:
                logger.info(f"{kind.value} email for {source.value} alert {alert_id} already sent at {sent_at}, skipping")
                return False

            user = await crud.get_user_by_id(session, payload["user_id"])
            if user is None or not user.email:
                logger.error(f"User {payload['user_id']} not found, skipping")
                return False

            email = user.email
            user_name = user.display_name
            strategy_name = await self._strategy_name(session, alert, source)

        # Сессия закрыта до внешнего вызова, соединение возвращено в pool
        subject, html = render_alert_email(
            kind=kind,
            source=source,
            user_name=user_name,
            symbol=payload["symbol"],
            order=payload.get("order") or 0,
            current_price=float(payload["current_price"]),
            target_price=float(payload["target_price"]),
            strategy_name=strategy_name,
        )

        # EmailSendError пробрасывается, sent-marker не пишется
        message_id = await self.email_service.send(
            email,
            subject,
            html,
            tags={"type": kind.value, "source": source.value},
        )

        now = self._clock()
        async with self.session_maker() as session:
            if source == RuleSource.STEP:
                written = await crud.mark_step_alert_sent(session, alert_id, kind, now)
            else:
                written = await crud.mark_tp_alert_sent(session, alert_id, kind, now)

        if not written:
            logger.warning(f"{kind.value} marker for {source.value} alert {alert_id} was set concurrently")

        logger.info(f"Alert email sent to {email} (id: {message_id})")
        return True

    @staticmethod
    async def _strategy_name(session: AsyncSession, alert, source: RuleSource) -> str:
        if source == RuleSource.STEP:
            return alert.step.strategy.name

        strategy_id: Optional[int] = alert.token_alert.strategy_id
        if strategy_id is None:
            return ""
        strategy = await crud.get_strategy_by_id(session, strategy_id)
        return strategy.name if strategy else ""
