"""Pydantic schemas for the monitoring core and API."""
from .monitoring import (
    TargetProtocol,
    HttpMethod,
    RuleType,
    Channel,
    Severity,
    AlertStatus,
    Target,
    CheckResult,
    AlertRule,
    Alert,
    NotificationSettings,
    AlertStatusUpdate,
    CycleSummary,
    TargetSummary,
)

__all__ = [
    "TargetProtocol",
    "HttpMethod",
    "RuleType",
    "Channel",
    "Severity",
    "AlertStatus",
    "Target",
    "CheckResult",
    "AlertRule",
    "Alert",
    "NotificationSettings",
    "AlertStatusUpdate",
    "CycleSummary",
    "TargetSummary",
]
