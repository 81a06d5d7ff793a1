"""
Alert rules - единое представление step alerts и TP alerts

StepAlert (правило на шаге стратегии) и TPAlert (правило на TP прогноза
holding-а) приводятся к одному AlertRule с тегом RuleSource, дальше их
оценивает один и тот же код.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from src.core.enums import AlertKind, BeforeTPType, RuleSource
from src.database.models import StepAlert, StrategyStep, TPAlert


def step_order(steps: List[StrategyStep], step_id: int) -> int:
    """
    Порядковый номер шага (TP1, TP2, ...) по возрастанию target_price

    Examples:
        steps с target_price [120, 100, 150] → шаг со 120 имеет order 2
    """
    ordered = sorted(steps, key=lambda s: (s.target_price, s.id))
    for index, step in enumerate(ordered, start=1):
        if step.id == step_id:
            return index
    return 0


@dataclass
class AlertRule:
    """Одно правило (beforeTP + tpReached) над одной target ценой."""

    source: RuleSource
    rule_id: int  # StepAlert.id или TPAlert.id
    user_id: int
    symbol: str
    target_price: float
    order: int
    before_tp_enabled: bool
    before_tp_value: Optional[float]
    before_tp_type: BeforeTPType
    tp_reached_enabled: bool
    before_tp_sent_at: Optional[datetime] = None
    tp_reached_sent_at: Optional[datetime] = None
    step_id: Optional[int] = None
    strategy_id: Optional[int] = None

    @classmethod
    def from_step_alert(cls, step_alert: StepAlert) -> "AlertRule":
        """StepAlert с загруженными step → strategy → steps."""
        step = step_alert.step
        strategy = step.strategy
        return cls(
            source=RuleSource.STEP,
            rule_id=step_alert.id,
            user_id=strategy.user_id,
            symbol=strategy.asset,
            target_price=float(step.target_price),
            order=step_order(strategy.steps, step.id),
            before_tp_enabled=step_alert.before_tp_enabled,
            before_tp_value=step_alert.before_tp_percentage,
            before_tp_type=BeforeTPType.PERCENTAGE,
            tp_reached_enabled=step_alert.tp_reached_enabled,
            before_tp_sent_at=step_alert.before_tp_email_sent_at,
            tp_reached_sent_at=step_alert.tp_reached_email_sent_at,
            step_id=step.id,
            strategy_id=strategy.id,
        )

    @classmethod
    def from_tp_alert(cls, tp_alert: TPAlert) -> "AlertRule":
        """TPAlert с загруженными token_alert → configuration."""
        token_alert = tp_alert.token_alert
        return cls(
            source=RuleSource.HOLDING,
            rule_id=tp_alert.id,
            user_id=token_alert.configuration.user_id,
            symbol=token_alert.token_symbol,
            target_price=float(tp_alert.target_price),
            order=tp_alert.tp_order,
            before_tp_enabled=tp_alert.before_tp_enabled,
            before_tp_value=tp_alert.before_tp_value,
            before_tp_type=BeforeTPType(tp_alert.before_tp_type),
            tp_reached_enabled=tp_alert.tp_reached_enabled,
            before_tp_sent_at=tp_alert.before_tp_email_sent_at,
            tp_reached_sent_at=tp_alert.tp_reached_email_sent_at,
            strategy_id=token_alert.strategy_id,
        )

    @property
    def lock_rule_key(self) -> str:
        """Последний сегмент lock key: '<stepAlertId>' или 'tp-<tpAlertId>'."""
        if self.source == RuleSource.STEP:
            return str(self.rule_id)
        return f"tp-{self.rule_id}"

    def before_tp_price(self) -> Optional[float]:
        """
        Нижняя граница beforeTP band

        Returns:
            None если band не задан (beforeTP не проверяется)

        Examples:
            target=100, percentage 2 → 98.0
            target=100, absolute 5 → 95.0
        """
        if self.before_tp_value is None:
            return None
        if self.before_tp_type == BeforeTPType.ABSOLUTE:
            return self.target_price - float(self.before_tp_value)
        return self.target_price * (1 - float(self.before_tp_value) / 100)

    def is_before_tp(self, current_price: float) -> bool:
        """before_price <= p < target, если правило включено и ещё не отправлено."""
        if not self.before_tp_enabled or self.before_tp_sent_at is not None:
            return False
        before_price = self.before_tp_price()
        if before_price is None:
            return False
        return before_price <= current_price < self.target_price

    def is_tp_reached(self, current_price: float) -> bool:
        """p >= target, если правило включено и ещё не отправлено."""
        if not self.tp_reached_enabled or self.tp_reached_sent_at is not None:
            return False
        return current_price >= self.target_price

    def fired_kinds(self, current_price: float) -> List[AlertKind]:
        """Оба условия проверяются независимо, могут сработать оба сразу."""
        kinds = []
        if self.is_before_tp(current_price):
            kinds.append(AlertKind.BEFORE_TP)
        if self.is_tp_reached(current_price):
            kinds.append(AlertKind.TP_REACHED)
        return kinds


@dataclass
class AlertNotification:
    """Сработавшее правило, готовое к постановке в send-email очередь."""

    rule: AlertRule
    kind: AlertKind
    current_price: float

    def to_payload(self) -> dict:
        """Payload send-alert job."""
        return {
            "user_id": self.rule.user_id,
            "alert_id": self.rule.rule_id,
            "step_id": self.rule.step_id,
            "strategy_id": self.rule.strategy_id,
            "symbol": self.rule.symbol,
            "current_price": self.current_price,
            "target_price": self.rule.target_price,
            "kind": self.kind.value,
            "order": self.rule.order,
            "source": self.rule.source.value,
        }
