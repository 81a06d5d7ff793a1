"""
Core Enums - единые типы для всего alerts pipeline.

Определяет:
- StrategyStatus / StepState / TargetType: жизненный цикл стратегий и шагов
- BeforeTPType: как задан диапазон beforeTP у TP-алерта
- AlertKind: какое правило сработало
- RuleSource: из какой таблицы пришло правило (step alert vs TP alert)
"""

from enum import Enum


class StrategyStatus(str, Enum):
    """Статус take-profit стратегии."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class StepState(str, Enum):
    """Жизненный цикл шага: pending → triggered → done."""

    PENDING = "pending"
    TRIGGERED = "triggered"
    DONE = "done"


class TargetType(str, Enum):
    """Как был задан target шага.

    Target price всегда вычисляется один раз при создании/обновлении шага,
    evaluation работает только с абсолютной ценой.
    """

    EXACT_PRICE = "exact_price"
    PERCENTAGE_OF_AVERAGE = "percentage_of_average"


class BeforeTPType(str, Enum):
    """Тип значения beforeTP у TP-алерта."""

    PERCENTAGE = "percentage"  # % ниже target
    ABSOLUTE = "absolute"  # $ ниже target


class AlertKind(str, Enum):
    """Тип сработавшего правила.

    Значения совпадают с ключами lock-ов и payload email jobs.
    """

    BEFORE_TP = "beforeTP"
    TP_REACHED = "tpReached"


class RuleSource(str, Enum):
    """Источник правила."""

    STEP = "step"  # StepAlert, привязан к шагу стратегии
    HOLDING = "holding"  # TPAlert, привязан к holding через TokenAlert
