"""
Alerts pipeline: registry → scheduler → price check → evaluator → lock → dispatcher
"""
from .rules import AlertRule, AlertNotification
from .lock_guard import LockGuard
from .registry import AlertRegistry
from .evaluator import AlertEvaluator
from .scheduler import PriceCheckScheduler
from .price_check_processor import PriceCheckProcessor
from .dispatcher import NotificationDispatcher

__all__ = [
    'AlertRule',
    'AlertNotification',
    'LockGuard',
    'AlertRegistry',
    'AlertEvaluator',
    'PriceCheckScheduler',
    'PriceCheckProcessor',
    'NotificationDispatcher',
]
