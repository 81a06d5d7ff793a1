"""
Core module - базовые типы и enums для всего стека.
"""

from src.core.enums import (
    StrategyStatus,
    StepState,
    TargetType,
    BeforeTPType,
    AlertKind,
    RuleSource,
)

__all__ = [
    "StrategyStatus",
    "StepState",
    "TargetType",
    "BeforeTPType",
    "AlertKind",
    "RuleSource",
]
