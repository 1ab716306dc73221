"""Database models."""
from .user import User
from .target import Target
from .monitoring_check import MonitoringCheck
from .alert_rule import AlertRule
from .alert import Alert
from .notification_settings import NotificationSettings
from .audit_log import AuditLog

__all__ = [
    "User",
    "Target",
    "MonitoringCheck",
    "AlertRule",
    "Alert",
    "NotificationSettings",
    "AuditLog",
]
