"""Shared fixtures and in-memory collaborators for the monitoring tests."""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from uptimer.database import Base
from uptimer.exceptions import PersistenceError
from uptimer.schemas import (
    Alert,
    AlertRule,
    AlertStatus,
    Channel,
    CheckResult,
    NotificationSettings,
    RuleType,
    Target,
)
from uptimer.services.store import MonitoringStore
import uptimer.models  # noqa: F401


BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


class StepClock:
    """Returns BASE_TIME, BASE_TIME + step, BASE_TIME + 2*step, ..."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


def make_target(target_id: int = 1, **overrides) -> Target:
    data = {
        "id": target_id,
        "user_id": 1,
        "name": f"target-{target_id}",
        "url": f"service-{target_id}.example.com/health",
        "protocol": "https",
        "method": "GET",
        "timeout": 5,
        "expected_status_code": 200,
    }
    data.update(overrides)
    return Target(**data)


def make_check(success: bool, target_id: int = 1, response_time_ms: int = 100, **overrides) -> CheckResult:
    data = {
        "target_id": target_id,
        "status_code": 200 if success else None,
        "response_time_ms": response_time_ms,
        "is_success": success,
        "error_message": None if success else "Connection error: refused",
    }
    data.update(overrides)
    return CheckResult(**data)


def make_history(*successes: bool, target_id: int = 1) -> List[CheckResult]:
    """History in most-recent-first order."""
    return [make_check(s, target_id=target_id) for s in successes]


def make_rule(rule_id: int = 1, rule_type=RuleType.CONSECUTIVE_FAILURES, threshold: int = 3, **overrides) -> AlertRule:
    data = {
        "id": rule_id,
        "target_id": 1,
        "user_id": 1,
        "name": f"rule-{rule_id}",
        "rule_type": rule_type,
        "threshold": threshold,
        "notification_channels": frozenset({Channel.SLACK}),
    }
    data.update(overrides)
    return AlertRule(**data)


def make_alert(alert_id: Optional[int] = 1, **overrides) -> Alert:
    data = {
        "id": alert_id,
        "rule_id": 1,
        "target_id": 1,
        "user_id": 1,
        "severity": "high",
        "message": "3 consecutive failures detected",
        "triggered_at": BASE_TIME,
    }
    data.update(overrides)
    return Alert(**data)


class FakeStore:
    """In-memory stand-in for MonitoringStore."""

    def __init__(
        self,
        targets=(),
        rules: Optional[Dict[int, List[AlertRule]]] = None,
        settings: Optional[Dict[int, NotificationSettings]] = None,
        emails: Optional[Dict[int, str]] = None,
    ):
        self.targets = list(targets)
        self.rules = rules or {}
        self.settings = settings or {}
        self.emails = emails or {}
        self.checks: List[CheckResult] = []
        self.alerts: List[Alert] = []
        self.audit_events = []
        self.failing_check_inserts = set()

    async def list_active_targets(self):
        return [t for t in self.targets if t.is_active]

    async def get_target(self, target_id):
        return next((t for t in self.targets if t.id == target_id), None)

    async def insert_check_result(self, check):
        if check.target_id in self.failing_check_inserts:
            raise PersistenceError("database is locked")
        self.checks.append(check)
        return check

    async def list_recent_checks(self, target_id, *, limit=None, window_hours=None):
        history = [c for c in reversed(self.checks) if c.target_id == target_id]
        if window_hours is not None:
            cutoff = BASE_TIME - timedelta(hours=window_hours)
            history = [c for c in history if c.checked_at >= cutoff]
        return history[:limit] if limit is not None else history

    async def list_active_rules_for_target(self, target_id):
        return [r for r in self.rules.get(target_id, []) if r.is_active]

    async def insert_alert(self, alert):
        stored = alert.model_copy(update={"id": len(self.alerts) + 1})
        self.alerts.append(stored)
        return stored

    async def get_alert(self, alert_id):
        return next((a for a in self.alerts if a.id == alert_id), None)

    async def update_alert(self, alert):
        self.alerts = [alert if a.id == alert.id else a for a in self.alerts]
        return alert

    async def get_open_alert_for_rule(self, rule_id):
        open_alerts = [
            a for a in self.alerts
            if a.rule_id == rule_id and a.status != AlertStatus.RESOLVED
        ]
        return open_alerts[-1] if open_alerts else None

    async def list_alerts(self, user_id, status=None, limit=50):
        alerts = [a for a in reversed(self.alerts) if a.user_id == user_id]
        if status is not None:
            alerts = [a for a in alerts if a.status == status]
        return alerts[:limit]

    async def get_notification_settings(self, user_id):
        return self.settings.get(user_id)

    async def get_user_email(self, user_id):
        return self.emails.get(user_id)

    async def record_audit_event(self, user_id, action, entity_type, entity_id=None, details=None):
        self.audit_events.append((user_id, action, entity_type, entity_id, details))


class RecordingNotifier:
    """Notifier double that records dispatch calls."""

    def __init__(self):
        self.calls = []

    async def dispatch(self, alert, channels, settings, recipient=None):
        self.calls.append((alert, set(channels), settings, recipient))
        return []


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'uptimer-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory) -> MonitoringStore:
    return MonitoringStore(session_factory, now=lambda: BASE_TIME)
