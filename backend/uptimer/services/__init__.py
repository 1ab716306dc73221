"""Services for probing, evaluating, alerting and scheduling."""
from .checker import CheckerService
from .evaluator import EvaluatorService
from .lifecycle import LifecycleService
from .notifier import NotifierService
from .scheduler import SchedulerService
from .store import MonitoringStore

__all__ = [
    "CheckerService",
    "EvaluatorService",
    "LifecycleService",
    "NotifierService",
    "SchedulerService",
    "MonitoringStore",
]
