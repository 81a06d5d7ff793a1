"""
Tests for AlertEvaluator (SQLite + fake Redis + in-memory queue)
"""

from unittest.mock import AsyncMock, patch

import pytest

from src.alerts.evaluator import SEND_ALERT_JOB, AlertEvaluator
from src.alerts.lock_guard import LockGuard
from src.core.enums import AlertKind, RuleSource
from src.database import crud


@pytest.fixture
def evaluator(session_maker, redis_manager, job_queue):
    return AlertEvaluator(session_maker, LockGuard(redis_manager, ttl_seconds=300), job_queue)


def email_jobs(job_queue):
    return job_queue.pending("send-email")


@pytest.mark.asyncio
async def test_before_tp_fires_once(evaluator, job_queue, fake_redis, make_step_alert):
    """Price inside the 2% band: one beforeTP job, the second evaluation is blocked by the lock"""
    created = await make_step_alert(target_price=100.0, before_tp_percentage=2.0)
    step_alert_id = created["step_alert"].id
    user_id = created["user"].id

    fired = await evaluator.evaluate(1, 99.0)

    assert [n.kind for n in fired] == [AlertKind.BEFORE_TP]
    jobs = email_jobs(job_queue)
    assert len(jobs) == 1
    assert jobs[0].name == SEND_ALERT_JOB
    assert jobs[0].payload["kind"] == "beforeTP"
    assert jobs[0].payload["alert_id"] == step_alert_id
    assert jobs[0].payload["current_price"] == 99.0
    assert jobs[0].payload["target_price"] == 100.0
    assert jobs[0].payload["order"] == 1
    assert fake_redis.keys_matching("alert:lock:*") == [f"alert:lock:beforeTP:{user_id}:{step_alert_id}"]

    assert await evaluator.evaluate(1, 99.0) == []
    assert len(email_jobs(job_queue)) == 1


@pytest.mark.asyncio
async def test_price_below_band_fires_nothing(evaluator, job_queue, make_step_alert):
    await make_step_alert(target_price=100.0, before_tp_percentage=2.0)

    assert await evaluator.evaluate(1, 97.0) == []
    assert email_jobs(job_queue) == []


@pytest.mark.asyncio
async def test_tp_reached_then_sent_marker_suppresses(
    evaluator, job_queue, fake_clock, db_session, make_step_alert
):
    created = await make_step_alert(target_price=100.0)
    step_alert_id = created["step_alert"].id

    fired = await evaluator.evaluate(1, 100.0)
    assert [n.kind for n in fired] == [AlertKind.TP_REACHED]

    # Email delivered, marker persisted, lock expired
    await crud.mark_step_alert_sent(db_session, step_alert_id, AlertKind.TP_REACHED)
    fake_clock.advance(301)

    assert await evaluator.evaluate(1, 101.0) == []
    assert len(email_jobs(job_queue)) == 1


@pytest.mark.asyncio
async def test_step_order_follows_target_price(evaluator, job_queue, make_step_alert):
    await make_step_alert(target_price=120.0, extra_targets=(100.0, 150.0))

    fired = await evaluator.evaluate(1, 125.0)

    assert len(fired) == 1
    assert fired[0].rule.order == 2
    assert email_jobs(job_queue)[0].payload["order"] == 2


@pytest.mark.asyncio
async def test_holding_tp_alert_uses_tp_lock_key(evaluator, job_queue, fake_redis, db_session):
    user = await crud.create_user(db_session, email="holder@example.com")
    await crud.get_or_create_token(db_session, 1027, "ETH")
    configuration = await crud.create_alert_configuration(db_session, user.id)
    token_alert = await crud.create_token_alert(
        db_session,
        configuration.id,
        "h-1",
        "ETH",
        [
            {"tp_order": 1, "target_price": 4000, "before_tp_value": 100, "before_tp_type": "absolute"},
            {"tp_order": 2, "target_price": 5000, "before_tp_value": 10},
        ],
    )
    tp1 = next(tp for tp in token_alert.tp_alerts if tp.tp_order == 1)

    fired = await evaluator.evaluate(1027, 3950.0)

    assert [(n.rule.order, n.kind) for n in fired] == [(1, AlertKind.BEFORE_TP)]
    payload = email_jobs(job_queue)[0].payload
    assert payload["source"] == RuleSource.HOLDING.value
    assert payload["alert_id"] == tp1.id
    assert fake_redis.keys_matching("alert:lock:*") == [f"alert:lock:beforeTP:{user.id}:tp-{tp1.id}"]


@pytest.mark.asyncio
async def test_unknown_token_and_disabled_email(evaluator, job_queue, make_step_alert):
    await make_step_alert(email_enabled=False)

    assert await evaluator.evaluate(999, 100.0) == []
    assert await evaluator.evaluate(1, 100.0) == []
    assert email_jobs(job_queue) == []


@pytest.mark.asyncio
async def test_redis_down_enqueues_nothing(evaluator, job_queue, fake_redis, make_step_alert):
    await make_step_alert()
    fake_redis.fail = True

    assert await evaluator.evaluate(1, 100.0) == []
    assert email_jobs(job_queue) == []


@pytest.mark.asyncio
async def test_rule_error_does_not_stop_others(evaluator, job_queue, make_step_alert):
    await make_step_alert(email="first@example.com")
    await make_step_alert(email="second@example.com")

    enqueue = AsyncMock(side_effect=[RuntimeError("queue hiccup"), None])
    with patch.object(job_queue, "enqueue", new=enqueue):
        fired = await evaluator.evaluate(1, 100.0)

    assert len(fired) == 1
    assert enqueue.await_count == 2


@pytest.mark.asyncio
async def test_rule_load_error_propagates(evaluator):
    with patch(
        "src.alerts.evaluator.crud.get_token_by_cmc_id",
        new=AsyncMock(side_effect=RuntimeError("db down")),
    ):
        with pytest.raises(RuntimeError):
            await evaluator.evaluate(1, 100.0)


@pytest.mark.asyncio
async def test_price_at_band_lower_edge_fires_before_tp(evaluator, job_queue, make_step_alert):
    await make_step_alert(target_price=100.0, before_tp_percentage=2.0)

    fired = await evaluator.evaluate(1, 98.0)

    assert [n.kind for n in fired] == [AlertKind.BEFORE_TP]
    assert len(email_jobs(job_queue)) == 1
