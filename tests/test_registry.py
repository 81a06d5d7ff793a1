"""
Tests for AlertRegistry.get_watched_token_ids
"""

from unittest.mock import AsyncMock, patch

import pytest

from src.alerts.registry import AlertRegistry
from src.core.enums import StrategyStatus
from src.database import crud


@pytest.mark.asyncio
async def test_union_of_all_sources(session_maker, db_session, make_step_alert):
    # Source 1 + 2: strategy with token_cmc_id and an active step alert
    await make_step_alert(symbol="BTC", cmc_id=1)

    # Source 1 only: legacy strategy resolved through the latest transaction
    user = await crud.create_user(db_session, email="legacy@example.com")
    await crud.create_transaction(db_session, user.id, "DOGE", 74)
    await crud.create_strategy(
        db_session, user.id, "doge", "DOGE", 0.1,
        steps=[{"target_value": 0.5, "sell_percentage": 100}],
    )

    # Source 3: TP alert on a symbol known to the tokens table
    await crud.get_or_create_token(db_session, 1027, "ETH")
    configuration = await crud.create_alert_configuration(db_session, user.id)
    await crud.create_token_alert(
        db_session, configuration.id, "h-1", "ETH", [{"tp_order": 1, "target_price": 5000}]
    )

    registry = AlertRegistry(session_maker)

    assert await registry.get_watched_token_ids() == {1, 74, 1027}


@pytest.mark.asyncio
async def test_inactive_and_unresolvable_are_ignored(session_maker, db_session):
    user = await crud.create_user(db_session, email="idle@example.com")
    # Paused strategy
    await crud.create_strategy(
        db_session, user.id, "paused", "BTC", 100,
        steps=[{"target_value": 200, "sell_percentage": 10}],
        token_cmc_id=1, status=StrategyStatus.PAUSED,
    )
    # Active legacy strategy without any transaction
    await crud.create_strategy(
        db_session, user.id, "orphan", "XYZ", 1,
        steps=[{"target_value": 2, "sell_percentage": 10}],
    )

    registry = AlertRegistry(session_maker)

    assert await registry.get_watched_token_ids() == set()


@pytest.mark.asyncio
async def test_step_alert_without_token_row_is_skipped(session_maker, db_session, make_step_alert):
    created = await make_step_alert(symbol="NEW", cmc_id=555)
    # Strategy source still resolves it from token_cmc_id, drop that path
    created["strategy"].token_cmc_id = None
    db_session.add(created["strategy"])
    await db_session.commit()
    await db_session.delete(created["token"])
    await db_session.commit()

    registry = AlertRegistry(session_maker)

    assert await registry.get_watched_token_ids() == set()


@pytest.mark.asyncio
async def test_failing_source_degrades(session_maker, make_step_alert):
    """One source raising contributes nothing, the others still count"""
    await make_step_alert(symbol="BTC", cmc_id=1)
    registry = AlertRegistry(session_maker)

    with patch(
        "src.alerts.registry.crud.get_active_strategies_with_pending_steps",
        new=AsyncMock(side_effect=RuntimeError("db down")),
    ):
        assert await registry.get_watched_token_ids() == {1}

    with patch(
        "src.alerts.registry.crud.get_watched_step_alert_symbols",
        new=AsyncMock(side_effect=RuntimeError("db down")),
    ), patch(
        "src.alerts.registry.crud.get_active_strategies_with_pending_steps",
        new=AsyncMock(side_effect=RuntimeError("db down")),
    ):
        assert await registry.get_watched_token_ids() == set()
