"""
Unit tests for CRUD operations
"""

from datetime import datetime, timedelta, UTC

import pytest

from src.core.enums import AlertKind, StepState
from src.database.crud import (
    compute_target_price,
    create_user,
    create_transaction,
    create_step_alert,
    create_strategy,
    create_alert_configuration,
    create_token_alert,
    get_or_create_token,
    get_cmc_ids_by_symbols,
    get_latest_transaction_cmc_id,
    get_active_strategies_with_pending_steps,
    get_step_alerts_for_symbol,
    get_tp_alerts_for_symbol,
    get_step_alert,
    get_strategy_by_id,
    get_tp_alert,
    mark_step_alert_sent,
    mark_tp_alert_sent,
)
from src.database.models import StrategyStep


def test_compute_target_price():
    """Exact price is taken as-is, percentage is applied to the reference price"""
    assert compute_target_price("exact_price", 100, 50) == 100.0
    assert compute_target_price("percentage_of_average", 50, 80) == pytest.approx(120.0)
    assert compute_target_price("percentage_of_average", 0, 80) == pytest.approx(80.0)


@pytest.mark.asyncio
async def test_create_strategy_derives_target_prices(db_session):
    user = await create_user(db_session, email="bob@example.com")

    strategy = await create_strategy(
        db_session,
        user_id=user.id,
        name="ETH ladder",
        asset="eth",
        reference_price=2000,
        steps=[
            {"target_type": "percentage_of_average", "target_value": 100, "sell_percentage": 50},
            {"target_type": "exact_price", "target_value": 3000, "sell_percentage": 25},
        ],
    )

    assert strategy.asset == "ETH"
    assert [step.target_price for step in strategy.steps] == [pytest.approx(3000), pytest.approx(4000)]
    assert all(step.state == StepState.PENDING.value for step in strategy.steps)


@pytest.mark.asyncio
async def test_step_alert_default_percentage(db_session, make_step_alert):
    """Enabled beforeTP without a percentage gets the default band"""
    created = await make_step_alert(before_tp_percentage=None, extra_targets=(150.0,))
    assert created["step_alert"].before_tp_percentage == 2.0

    second_step = next(s for s in created["strategy"].steps if s.target_price == 150.0)
    explicit = await create_step_alert(db_session, second_step.id, before_tp_percentage=5)
    assert explicit.before_tp_percentage == 5

    disabled = await make_step_alert(
        symbol="ADA", cmc_id=2010, email="dave@example.com",
        before_tp_enabled=False, before_tp_percentage=None,
    )
    assert disabled["step_alert"].before_tp_percentage is None


@pytest.mark.asyncio
async def test_get_or_create_token(db_session):
    token, created = await get_or_create_token(db_session, 1, "btc", "Bitcoin")
    again, created_again = await get_or_create_token(db_session, 1, "BTC")

    assert created is True
    assert created_again is False
    assert again.id == token.id
    assert token.symbol == "BTC"


@pytest.mark.asyncio
async def test_get_cmc_ids_by_symbols(db_session):
    await get_or_create_token(db_session, 1, "BTC")
    await get_or_create_token(db_session, 1027, "ETH")

    assert await get_cmc_ids_by_symbols(db_session, {"BTC", "ETH", "NOPE"}) == {"BTC": 1, "ETH": 1027}
    assert await get_cmc_ids_by_symbols(db_session, []) == {}


@pytest.mark.asyncio
async def test_latest_transaction_cmc_id(db_session):
    user = await create_user(db_session, email="erin@example.com")
    now = datetime.now(UTC)
    await create_transaction(db_session, user.id, "PEPE", 24478, created_at=now - timedelta(days=2))
    await create_transaction(db_session, user.id, "PEPE", 99999, created_at=now)
    await create_transaction(db_session, user.id, "PEPE", None, created_at=now + timedelta(days=1))

    assert await get_latest_transaction_cmc_id(db_session, user.id, "PEPE") == 99999
    assert await get_latest_transaction_cmc_id(db_session, user.id, "DOGE") is None


@pytest.mark.asyncio
async def test_active_strategies_with_pending_steps(db_session, make_step_alert):
    created = await make_step_alert()
    strategy = created["strategy"]

    found = await get_active_strategies_with_pending_steps(db_session)
    assert [s.id for s in found] == [strategy.id]

    for step in strategy.steps:
        step.state = StepState.TRIGGERED.value
    await db_session.commit()

    assert await get_active_strategies_with_pending_steps(db_session) == []


@pytest.mark.asyncio
async def test_step_alerts_for_symbol_filters(db_session, make_step_alert):
    active = await make_step_alert()
    await make_step_alert(email="mute@example.com", email_enabled=False)
    await make_step_alert(email="off@example.com", strategy_alert_active=False)

    found = await get_step_alerts_for_symbol(db_session, "BTC")

    assert [sa.id for sa in found] == [active["step_alert"].id]
    assert found[0].step.strategy.steps[0].target_price == 100.0
    assert await get_step_alerts_for_symbol(db_session, "ETH") == []


@pytest.mark.asyncio
async def test_tp_alerts_for_symbol_filters(db_session):
    user = await create_user(db_session, email="frank@example.com")
    configuration = await create_alert_configuration(db_session, user.id, forecast_id="f-1")
    token_alert = await create_token_alert(
        db_session,
        configuration.id,
        holding_id="h-1",
        token_symbol="eth",
        tp_alerts=[
            {"tp_order": 1, "target_price": 4000, "before_tp_value": 2},
            {"tp_order": 2, "target_price": 5000, "is_active": False},
        ],
    )

    found = await get_tp_alerts_for_symbol(db_session, "ETH")

    assert token_alert.number_of_targets == 2
    assert [tp.tp_order for tp in found] == [1]
    assert found[0].token_alert.configuration.user_id == user.id


@pytest.mark.asyncio
async def test_mark_step_alert_sent_before_tp(db_session, make_step_alert):
    created = await make_step_alert()
    step_alert_id = created["step_alert"].id

    assert await mark_step_alert_sent(db_session, step_alert_id, AlertKind.BEFORE_TP) is True
    assert await mark_step_alert_sent(db_session, step_alert_id, AlertKind.BEFORE_TP) is False

    step_alert = await get_step_alert(db_session, step_alert_id)
    assert step_alert.before_tp_email_sent_at is not None
    assert step_alert.tp_reached_email_sent_at is None
    assert step_alert.step.state == StepState.PENDING.value


@pytest.mark.asyncio
async def test_mark_step_alert_sent_tp_reached_triggers_step(db_session, make_step_alert):
    created = await make_step_alert()
    step_alert_id = created["step_alert"].id

    assert await mark_step_alert_sent(db_session, step_alert_id, AlertKind.TP_REACHED) is True

    step = await db_session.get(StrategyStep, created["step"].id, populate_existing=True)
    assert step.state == StepState.TRIGGERED.value
    assert step.triggered_at is not None

    strategy = await get_strategy_by_id(db_session, created["strategy"].id)
    assert strategy.steps[0].state == StepState.TRIGGERED.value


@pytest.mark.asyncio
async def test_mark_tp_alert_sent(db_session):
    user = await create_user(db_session, email="gina@example.com")
    configuration = await create_alert_configuration(db_session, user.id)
    token_alert = await create_token_alert(
        db_session, configuration.id, "h-2", "SOL", [{"tp_order": 1, "target_price": 300}]
    )
    tp_id = token_alert.tp_alerts[0].id

    assert await mark_tp_alert_sent(db_session, tp_id, AlertKind.TP_REACHED) is True
    assert await mark_tp_alert_sent(db_session, tp_id, AlertKind.TP_REACHED) is False

    tp_alert = await get_tp_alert(db_session, tp_id)
    assert tp_alert.tp_reached_email_sent_at is not None
    assert tp_alert.before_tp_email_sent_at is None
