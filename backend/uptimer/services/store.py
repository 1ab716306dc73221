"""Store service - SQLAlchemy-backed data access for the monitoring core.

Every method opens its own session so concurrent per-target pipelines never
share one. ORM rows are converted to the pydantic types in ``schemas`` before
they leave this module.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .. import models
from ..exceptions import ConfigurationError, PersistenceError
from ..schemas import (
    Alert,
    AlertRule,
    AlertStatus,
    Channel,
    CheckResult,
    NotificationSettings,
    RuleType,
    Target,
)

logger = logging.getLogger(__name__)


def parse_channels(raw: Optional[str]) -> frozenset:
    """Parse a stored JSON channel list such as ``'["email", "slack"]'``."""
    if not raw:
        return frozenset()
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Unparsable channel list: {raw!r}", cause=e)
    if not isinstance(values, list):
        raise ConfigurationError(f"Channel list must be a JSON array: {raw!r}")
    try:
        return frozenset(Channel(value) for value in values)
    except ValueError as e:
        raise ConfigurationError(f"Unknown channel in {raw!r}", cause=e)


def serialize_channels(channels) -> str:
    return json.dumps(sorted(Channel(c).value for c in channels))


def rule_from_row(row: models.AlertRule) -> AlertRule:
    try:
        rule_type = RuleType(row.rule_type)
    except ValueError as e:
        raise ConfigurationError(f"Unknown rule type: {row.rule_type!r}", cause=e)

    channels = parse_channels(row.notification_channels)
    if row.is_active and not channels:
        raise ConfigurationError(f"Active rule {row.id} has no notification channels")

    return AlertRule(
        id=row.id,
        target_id=row.target_id,
        user_id=row.user_id,
        name=row.name,
        rule_type=rule_type,
        threshold=row.threshold,
        notification_channels=channels,
        is_active=row.is_active,
    )


class MonitoringStore:
    """Data store used by the scheduler, lifecycle and API layers."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        if session_factory is None:
            from ..database import async_session
            session_factory = async_session
        self._session_factory = session_factory
        self._now = now

    def _session(self) -> AsyncSession:
        return self._session_factory()

    async def list_active_targets(self) -> List[Target]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(models.Target)
                    .where(models.Target.is_active.is_(True))
                    .order_by(models.Target.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list active targets: {e}", cause=e)

        targets = []
        for row in rows:
            try:
                targets.append(Target.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping misconfigured target {row.id}: {e}")
        return targets

    async def get_target(self, target_id: int) -> Optional[Target]:
        """Load one target, active or not. Misconfigured rows read as missing."""
        try:
            async with self._session() as session:
                row = await session.get(models.Target, target_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load target {target_id}: {e}", cause=e)

        if row is None:
            return None
        try:
            return Target.model_validate(row)
        except ValidationError as e:
            logger.warning(f"Target {target_id} is misconfigured: {e}")
            return None

    async def insert_check_result(self, check: CheckResult) -> CheckResult:
        try:
            async with self._session() as session:
                session.add(models.MonitoringCheck(
                    target_id=check.target_id,
                    status_code=check.status_code,
                    response_time_ms=check.response_time_ms,
                    is_success=check.is_success,
                    error_message=check.error_message,
                    checked_at=check.checked_at,
                ))
                await session.commit()
            return check
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to record check for target {check.target_id}: {e}", cause=e
            )

    async def list_recent_checks(
        self,
        target_id: int,
        *,
        limit: Optional[int] = None,
        window_hours: Optional[int] = None,
    ) -> List[CheckResult]:
        """Checks for a target, most recent first."""
        query = (
            select(models.MonitoringCheck)
            .where(models.MonitoringCheck.target_id == target_id)
            .order_by(
                models.MonitoringCheck.checked_at.desc(),
                models.MonitoringCheck.id.desc(),
            )
        )
        if window_hours is not None:
            cutoff = self._now() - timedelta(hours=window_hours)
            query = query.where(models.MonitoringCheck.checked_at >= cutoff)
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self._session() as session:
                result = await session.execute(query)
                return [CheckResult.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load checks for target {target_id}: {e}", cause=e)

    async def list_active_rules_for_target(self, target_id: int) -> List[AlertRule]:
        """Active rules for a target. Malformed rules are logged and left out."""
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(models.AlertRule)
                    .where(
                        models.AlertRule.target_id == target_id,
                        models.AlertRule.is_active.is_(True),
                    )
                    .order_by(models.AlertRule.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load rules for target {target_id}: {e}", cause=e)

        rules = []
        for row in rows:
            try:
                rules.append(rule_from_row(row))
            except ConfigurationError as e:
                logger.warning(f"Skipping rule {row.id} for target {target_id}: {e.message}")
        return rules

    async def insert_alert(self, alert: Alert) -> Alert:
        try:
            async with self._session() as session:
                row = models.Alert(
                    rule_id=alert.rule_id,
                    target_id=alert.target_id,
                    user_id=alert.user_id,
                    status=alert.status.value,
                    message=alert.message,
                    severity=alert.severity.value,
                    triggered_at=alert.triggered_at,
                    acknowledged_at=alert.acknowledged_at,
                    resolved_at=alert.resolved_at,
                )
                session.add(row)
                await session.commit()
                return Alert.model_validate(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create alert for rule {alert.rule_id}: {e}", cause=e)

    async def get_alert(self, alert_id: int) -> Optional[Alert]:
        try:
            async with self._session() as session:
                row = await session.get(models.Alert, alert_id)
                return Alert.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load alert {alert_id}: {e}", cause=e)

    async def update_alert(self, alert: Alert) -> Alert:
        """Persist status and lifecycle timestamps of an existing alert."""
        try:
            async with self._session() as session:
                row = await session.get(models.Alert, alert.id)
                if row is None:
                    raise PersistenceError(f"Alert {alert.id} does not exist")
                row.status = alert.status.value
                row.acknowledged_at = alert.acknowledged_at
                row.resolved_at = alert.resolved_at
                await session.commit()
                return Alert.model_validate(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update alert {alert.id}: {e}", cause=e)

    async def get_open_alert_for_rule(self, rule_id: int) -> Optional[Alert]:
        """Most recent alert for ``rule_id`` that is not yet resolved."""
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(models.Alert)
                    .where(
                        models.Alert.rule_id == rule_id,
                        models.Alert.status != AlertStatus.RESOLVED.value,
                    )
                    .order_by(models.Alert.triggered_at.desc(), models.Alert.id.desc())
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return Alert.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load open alert for rule {rule_id}: {e}", cause=e)

    async def list_alerts(
        self,
        user_id: int,
        status: Optional[AlertStatus] = None,
        limit: int = 50,
    ) -> List[Alert]:
        query = (
            select(models.Alert)
            .where(models.Alert.user_id == user_id)
            .order_by(models.Alert.triggered_at.desc(), models.Alert.id.desc())
            .limit(limit)
        )
        if status is not None:
            query = query.where(models.Alert.status == AlertStatus(status).value)

        try:
            async with self._session() as session:
                result = await session.execute(query)
                return [Alert.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list alerts for user {user_id}: {e}", cause=e)

    async def get_notification_settings(self, user_id: int) -> Optional[NotificationSettings]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(models.NotificationSettings)
                    .where(models.NotificationSettings.user_id == user_id)
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                return NotificationSettings.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load notification settings for user {user_id}: {e}", cause=e)

    async def get_user_email(self, user_id: int) -> Optional[str]:
        try:
            async with self._session() as session:
                user = await session.get(models.User, user_id)
                return user.email if user and user.email else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load user {user_id}: {e}", cause=e)

    async def record_audit_event(
        self,
        user_id: int,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        details: Optional[str] = None,
    ):
        """Write an audit log row. Failures are logged, never raised."""
        try:
            async with self._session() as session:
                session.add(models.AuditLog(
                    user_id=user_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                ))
                await session.commit()
        except Exception as e:
            logger.warning(f"Failed to record audit event {action} for user {user_id}: {e}")
