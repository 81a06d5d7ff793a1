"""
Alert Registry - какие токены сейчас надо мониторить

Три независимых источника:
1. Active стратегии с pending шагами (token id из strategy.token_cmc_id,
   для старых стратегий - из последней транзакции пользователя с этим символом)
2. StepAlerts с включённым правилом под active StrategyAlert
3. TPAlerts с включённым правилом под active TokenAlert / AlertConfiguration

Ошибка одного источника логируется и даёт пустой вклад, остальные работают.
"""
from typing import Awaitable, Callable, Dict, Set, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database import crud


class AlertRegistry:
    """Поиск token ids с живыми alert правилами."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_watched_token_ids(self) -> Set[int]:
        """
        Объединение token ids из всех источников.

        Никогда не бросает исключение.
        """
        sources: Dict[str, Callable[[AsyncSession], Awaitable[Set[int]]]] = {
            "strategies": self._from_strategies,
            "step_alerts": self._from_step_alerts,
            "tp_alerts": self._from_tp_alerts,
        }

        token_ids: Set[int] = set()
        for name, source in sources.items():
            try:
                async with self.session_maker() as session:
                    found = await source(session)
            except Exception as e:
                logger.error(f"Alert registry source '{name}' failed: {e}")
                continue

            logger.debug(f"Alert registry source '{name}': {len(found)} tokens")
            token_ids |= found

        return token_ids

    async def _from_strategies(self, session: AsyncSession) -> Set[int]:
        strategies = await crud.get_active_strategies_with_pending_steps(session)

        token_ids: Set[int] = set()
        resolved: Dict[Tuple[int, str], int] = {}
        for strategy in strategies:
            if strategy.token_cmc_id is not None:
                token_ids.add(strategy.token_cmc_id)
                continue

            # Fallback для стратегий без token_cmc_id
            key = (strategy.user_id, strategy.asset)
            if key not in resolved:
                resolved[key] = await crud.get_latest_transaction_cmc_id(
                    session, strategy.user_id, strategy.asset
                )
            if resolved[key] is not None:
                token_ids.add(resolved[key])
            else:
                logger.debug(
                    f"Strategy {strategy.id}: no token id for {strategy.asset}, skipping"
                )

        return token_ids

    async def _from_step_alerts(self, session: AsyncSession) -> Set[int]:
        symbols = await crud.get_watched_step_alert_symbols(session)
        cmc_ids = await crud.get_cmc_ids_by_symbols(session, symbols)
        return set(cmc_ids.values())

    async def _from_tp_alerts(self, session: AsyncSession) -> Set[int]:
        symbols = await crud.get_watched_tp_alert_symbols(session)
        cmc_ids = await crud.get_cmc_ids_by_symbols(session, symbols)
        return set(cmc_ids.values())
