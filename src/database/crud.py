"""
CRUD operations for exStrat Alerts

Async database operations using SQLAlchemy 2.0
"""

import logging
from datetime import datetime, UTC
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select, update, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.alerts_config import get_config
from src.core.enums import (
    AlertKind,
    BeforeTPType,
    StepState,
    StrategyStatus,
    TargetType,
)
from src.database.models import (
    User,
    Token,
    Transaction,
    Strategy,
    StrategyStep,
    StrategyAlert,
    StepAlert,
    AlertConfiguration,
    TokenAlert,
    TPAlert,
    default_notification_channels,
)

logger = logging.getLogger(__name__)


# ===========================
# USER / TOKEN OPERATIONS
# ===========================


async def create_user(
    session: AsyncSession, email: str, first_name: Optional[str] = None
) -> User:
    """
    Create new user

    Args:
        session: Database session
        email: Notification email
        first_name: Display name

    Returns:
        Created User model
    """
    user = User(email=email, first_name=first_name)
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info(f"User created: {user.id}")
    return user


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by database ID"""
    return await session.get(User, user_id)


async def get_or_create_token(
    session: AsyncSession, cmc_id: int, symbol: str, name: Optional[str] = None
) -> tuple[Token, bool]:
    """
    Get existing token or create it on first encounter

    Returns:
        Tuple of (Token model, is_created)
    """
    token = await get_token_by_cmc_id(session, cmc_id)
    if token:
        return token, False

    token = Token(cmc_id=cmc_id, symbol=symbol.upper(), name=name)
    session.add(token)
    await session.commit()
    await session.refresh(token)
    return token, True


async def get_token_by_cmc_id(session: AsyncSession, cmc_id: int) -> Optional[Token]:
    """Get token by CoinMarketCap ID"""
    stmt = select(Token).where(Token.cmc_id == cmc_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_cmc_ids_by_symbols(
    session: AsyncSession, symbols: Iterable[str]
) -> Dict[str, int]:
    """
    Resolve asset symbols to CoinMarketCap IDs through the tokens table

    When several tokens share a symbol the oldest row wins.

    Returns:
        Mapping symbol -> cmc_id (unknown symbols are omitted)
    """
    symbols = set(symbols)
    if not symbols:
        return {}

    stmt = (
        select(Token.symbol, Token.cmc_id)
        .where(Token.symbol.in_(symbols))
        .order_by(Token.id.desc())
    )
    result = await session.execute(stmt)
    # Later assignments win, so the lowest id ends up in the dict
    return {symbol: cmc_id for symbol, cmc_id in result.all()}


async def create_transaction(
    session: AsyncSession,
    user_id: int,
    symbol: str,
    cmc_id: Optional[int],
    quantity: float = 0.0,
    created_at: Optional[datetime] = None,
) -> Transaction:
    """Record a portfolio transaction"""
    tx = Transaction(
        user_id=user_id,
        symbol=symbol,
        cmc_id=cmc_id,
        quantity=quantity,
        created_at=created_at or datetime.now(UTC),
    )
    session.add(tx)
    await session.commit()
    await session.refresh(tx)
    return tx


async def get_latest_transaction_cmc_id(
    session: AsyncSession, user_id: int, symbol: str
) -> Optional[int]:
    """
    CoinMarketCap ID from the user's most recent transaction with this symbol

    Used for strategies that predate Strategy.token_cmc_id.
    """
    stmt = (
        select(Transaction.cmc_id)
        .where(
            Transaction.user_id == user_id,
            Transaction.symbol == symbol,
            Transaction.cmc_id.is_not(None),
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ===========================
# STRATEGY OPERATIONS
# ===========================


def compute_target_price(
    target_type: str, target_value: float, reference_price: float
) -> float:
    """
    Absolute target price of a step

    Args:
        target_type: exact_price or percentage_of_average
        target_value: Price, or % above the reference price
        reference_price: Strategy reference (average entry) price

    Returns:
        Absolute target price

    Examples:
        >>> compute_target_price("exact_price", 100, 50)
        100.0
        >>> compute_target_price("percentage_of_average", 50, 80)
        120.0
    """
    if TargetType(target_type) == TargetType.EXACT_PRICE:
        return float(target_value)
    return float(reference_price) * (1 + float(target_value) / 100)


async def create_strategy(
    session: AsyncSession,
    user_id: int,
    name: str,
    asset: str,
    reference_price: float,
    steps: List[dict],
    token_cmc_id: Optional[int] = None,
    status: StrategyStatus = StrategyStatus.ACTIVE,
) -> Strategy:
    """
    Create strategy with its steps

    Args:
        session: Database session
        user_id: Owner
        name: Display name
        asset: Asset symbol
        reference_price: Price used for percentage targets
        steps: [{"target_type", "target_value", "sell_percentage"}, ...]
        token_cmc_id: CoinMarketCap ID of the asset
        status: Initial status

    Returns:
        Created Strategy with steps loaded
    """
    strategy = Strategy(
        user_id=user_id,
        name=name,
        asset=asset.upper(),
        reference_price=reference_price,
        token_cmc_id=token_cmc_id,
        status=status.value,
    )
    for step in steps:
        target_type = step.get("target_type", TargetType.EXACT_PRICE.value)
        strategy.steps.append(
            StrategyStep(
                target_type=TargetType(target_type).value,
                target_value=step["target_value"],
                target_price=compute_target_price(
                    target_type, step["target_value"], reference_price
                ),
                sell_percentage=step.get("sell_percentage", 0.0),
                state=StepState.PENDING.value,
            )
        )

    session.add(strategy)
    await session.commit()

    logger.info(f"Strategy created: {strategy.id} ({strategy.asset}, {len(steps)} steps)")
    return await get_strategy_by_id(session, strategy.id)


async def get_strategy_by_id(session: AsyncSession, strategy_id: int) -> Optional[Strategy]:
    """Get strategy with steps and alert switch loaded"""
    stmt = (
        select(Strategy)
        .where(Strategy.id == strategy_id)
        .options(selectinload(Strategy.steps), selectinload(Strategy.strategy_alert))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_strategies_with_pending_steps(session: AsyncSession) -> List[Strategy]:
    """Active strategies that still have at least one pending step"""
    has_pending = exists().where(
        StrategyStep.strategy_id == Strategy.id,
        StrategyStep.state == StepState.PENDING.value,
    )
    stmt = select(Strategy).where(
        Strategy.status == StrategyStatus.ACTIVE.value, has_pending
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_strategy_alert(
    session: AsyncSession,
    strategy_id: int,
    is_active: bool = True,
    notification_channels: Optional[dict] = None,
) -> StrategyAlert:
    """Create or update the strategy-level alert switch"""
    stmt = select(StrategyAlert).where(StrategyAlert.strategy_id == strategy_id)
    result = await session.execute(stmt)
    strategy_alert = result.scalar_one_or_none()

    if strategy_alert is None:
        strategy_alert = StrategyAlert(strategy_id=strategy_id)
        session.add(strategy_alert)

    strategy_alert.is_active = is_active
    strategy_alert.notification_channels = (
        notification_channels or default_notification_channels()
    )
    await session.commit()
    await session.refresh(strategy_alert)
    return strategy_alert


async def create_step_alert(
    session: AsyncSession,
    step_id: int,
    before_tp_enabled: bool = True,
    before_tp_percentage: Optional[float] = None,
    tp_reached_enabled: bool = True,
    default_percentage: Optional[float] = None,
) -> StepAlert:
    """
    Create alert rules for a strategy step

    An enabled beforeTP rule without a percentage gets default_percentage
    (BEFORE_TP_DEFAULT_PERCENTAGE when not given).
    """
    if before_tp_enabled and before_tp_percentage is None:
        before_tp_percentage = (
            default_percentage
            if default_percentage is not None
            else get_config().rules.before_tp_default_percentage
        )

    step_alert = StepAlert(
        step_id=step_id,
        before_tp_enabled=before_tp_enabled,
        before_tp_percentage=before_tp_percentage,
        tp_reached_enabled=tp_reached_enabled,
    )
    session.add(step_alert)
    await session.commit()
    await session.refresh(step_alert)
    return step_alert


# ===========================
# HOLDING ALERT OPERATIONS
# ===========================


async def create_alert_configuration(
    session: AsyncSession,
    user_id: int,
    forecast_id: Optional[str] = None,
    is_active: bool = True,
    notification_channels: Optional[dict] = None,
) -> AlertConfiguration:
    """Create a holding alert configuration"""
    configuration = AlertConfiguration(
        user_id=user_id,
        forecast_id=forecast_id,
        is_active=is_active,
        notification_channels=notification_channels or default_notification_channels(),
    )
    session.add(configuration)
    await session.commit()
    await session.refresh(configuration)
    return configuration


async def create_token_alert(
    session: AsyncSession,
    alert_configuration_id: int,
    holding_id: str,
    token_symbol: str,
    tp_alerts: List[dict],
    strategy_id: Optional[int] = None,
    is_active: bool = True,
) -> TokenAlert:
    """
    Create a token alert with its TP alerts

    Args:
        tp_alerts: [{"tp_order", "target_price", "before_tp_enabled",
                     "before_tp_value", "before_tp_type", "tp_reached_enabled"}, ...]
    """
    token_alert = TokenAlert(
        alert_configuration_id=alert_configuration_id,
        holding_id=holding_id,
        token_symbol=token_symbol.upper(),
        strategy_id=strategy_id,
        number_of_targets=len(tp_alerts),
        is_active=is_active,
    )
    for tp in tp_alerts:
        token_alert.tp_alerts.append(
            TPAlert(
                tp_order=tp["tp_order"],
                target_price=tp["target_price"],
                sell_quantity=tp.get("sell_quantity", 0.0),
                projected_amount=tp.get("projected_amount", 0.0),
                remaining_value=tp.get("remaining_value", 0.0),
                before_tp_enabled=tp.get("before_tp_enabled", True),
                before_tp_value=tp.get("before_tp_value"),
                before_tp_type=BeforeTPType(
                    tp.get("before_tp_type", BeforeTPType.PERCENTAGE.value)
                ).value,
                tp_reached_enabled=tp.get("tp_reached_enabled", True),
                is_active=tp.get("is_active", True),
            )
        )

    session.add(token_alert)
    await session.commit()
    await session.refresh(token_alert, ["tp_alerts"])
    return token_alert


# ===========================
# ALERT DISCOVERY / EVALUATION QUERIES
# ===========================


async def get_watched_step_alert_symbols(session: AsyncSession) -> Set[str]:
    """
    Assets of step alerts with at least one rule enabled and an active strategy alert
    """
    stmt = (
        select(Strategy.asset)
        .join(StrategyStep, StrategyStep.strategy_id == Strategy.id)
        .join(StepAlert, StepAlert.step_id == StrategyStep.id)
        .join(StrategyAlert, StrategyAlert.strategy_id == Strategy.id)
        .where(
            StrategyAlert.is_active.is_(True),
            or_(StepAlert.before_tp_enabled.is_(True), StepAlert.tp_reached_enabled.is_(True)),
        )
        .distinct()
    )
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def get_watched_tp_alert_symbols(session: AsyncSession) -> Set[str]:
    """
    Symbols of active TP alerts with at least one rule enabled under an active configuration
    """
    stmt = (
        select(TokenAlert.token_symbol)
        .join(TPAlert, TPAlert.token_alert_id == TokenAlert.id)
        .join(AlertConfiguration, AlertConfiguration.id == TokenAlert.alert_configuration_id)
        .where(
            AlertConfiguration.is_active.is_(True),
            TokenAlert.is_active.is_(True),
            TPAlert.is_active.is_(True),
            or_(TPAlert.before_tp_enabled.is_(True), TPAlert.tp_reached_enabled.is_(True)),
        )
        .distinct()
    )
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def get_step_alerts_for_symbol(session: AsyncSession, symbol: str) -> List[StepAlert]:
    """
    Step alerts of active strategies on this asset with an active, email-enabled strategy alert

    Loads step -> strategy -> (steps, strategy_alert) for evaluation.
    """
    strategy_path = selectinload(StepAlert.step).selectinload(StrategyStep.strategy)
    stmt = (
        select(StepAlert)
        .join(StepAlert.step)
        .join(StrategyStep.strategy)
        .join(Strategy.strategy_alert)
        .where(
            Strategy.asset == symbol,
            Strategy.status == StrategyStatus.ACTIVE.value,
            StrategyAlert.is_active.is_(True),
        )
        .options(
            strategy_path.selectinload(Strategy.steps),
            strategy_path.selectinload(Strategy.strategy_alert),
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    step_alerts = result.scalars().all()

    # Channel selection lives in a JSON column, filter in Python
    return [sa for sa in step_alerts if sa.step.strategy.strategy_alert.email_enabled]


async def get_tp_alerts_for_symbol(session: AsyncSession, symbol: str) -> List[TPAlert]:
    """
    Active TP alerts on this symbol under an active, email-enabled configuration
    """
    stmt = (
        select(TPAlert)
        .join(TPAlert.token_alert)
        .join(TokenAlert.configuration)
        .where(
            TokenAlert.token_symbol == symbol,
            TokenAlert.is_active.is_(True),
            TPAlert.is_active.is_(True),
            AlertConfiguration.is_active.is_(True),
        )
        .options(selectinload(TPAlert.token_alert).selectinload(TokenAlert.configuration))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    tp_alerts = result.scalars().all()
    return [tp for tp in tp_alerts if tp.token_alert.configuration.email_enabled]


async def get_step_alert(session: AsyncSession, step_alert_id: int) -> Optional[StepAlert]:
    """Get step alert with its step and strategy loaded"""
    stmt = (
        select(StepAlert)
        .where(StepAlert.id == step_alert_id)
        .options(selectinload(StepAlert.step).selectinload(StrategyStep.strategy))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_tp_alert(session: AsyncSession, tp_alert_id: int) -> Optional[TPAlert]:
    """Get TP alert with its token alert and configuration loaded"""
    stmt = (
        select(TPAlert)
        .where(TPAlert.id == tp_alert_id)
        .options(selectinload(TPAlert.token_alert).selectinload(TokenAlert.configuration))
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ===========================
# SENT MARKERS
# ===========================


def _sent_column(model, kind: AlertKind):
    if kind == AlertKind.BEFORE_TP:
        return model.before_tp_email_sent_at
    return model.tp_reached_email_sent_at


async def mark_step_alert_sent(
    session: AsyncSession,
    step_alert_id: int,
    kind: AlertKind,
    sent_at: Optional[datetime] = None,
) -> bool:
    """
    Persist the permanent "email sent" marker of a step alert rule

    A tpReached marker also moves the step to triggered.

    Returns:
        True if the marker was written, False if it was already set
    """
    sent_at = sent_at or datetime.now(UTC)
    column = _sent_column(StepAlert, kind)

    result = await session.execute(
        update(StepAlert)
        .where(StepAlert.id == step_alert_id, column.is_(None))
        .values({column.key: sent_at})
    )
    written = result.rowcount > 0

    if written and kind == AlertKind.TP_REACHED:
        step_id = select(StepAlert.step_id).where(StepAlert.id == step_alert_id).scalar_subquery()
        await session.execute(
            update(StrategyStep)
            .where(StrategyStep.id == step_id, StrategyStep.state == StepState.PENDING.value)
            .values(state=StepState.TRIGGERED.value, triggered_at=sent_at)
        )

    await session.commit()
    return written


async def mark_tp_alert_sent(
    session: AsyncSession,
    tp_alert_id: int,
    kind: AlertKind,
    sent_at: Optional[datetime] = None,
) -> bool:
    """
    Persist the permanent "email sent" marker of a TP alert rule

    Returns:
        True if the marker was written, False if it was already set
    """
    sent_at = sent_at or datetime.now(UTC)
    column = _sent_column(TPAlert, kind)

    result = await session.execute(
        update(TPAlert)
        .where(TPAlert.id == tp_alert_id, column.is_(None))
        .values({column.key: sent_at})
    )
    await session.commit()
    return result.rowcount > 0
