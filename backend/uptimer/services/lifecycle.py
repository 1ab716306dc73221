"""Lifecycle service - alert creation and status transitions."""
import json
import logging
from datetime import datetime
from typing import Callable, Optional

from ..exceptions import InvalidTransitionError
from ..schemas import Alert, AlertRule, AlertStatus, Target
from .evaluator import Evaluation

logger = logging.getLogger(__name__)


# Allowed moves; staying in the same state is always a no-op
TRANSITIONS = {
    AlertStatus.TRIGGERED: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED},
    AlertStatus.RESOLVED: set(),
}


class LifecycleService:
    """Service owning the triggered -> acknowledged -> resolved state machine."""

    def __init__(self, store=None, now: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self._now = now

    def create(self, rule: AlertRule, target: Target, evaluation: Evaluation) -> Alert:
        """Build a new ``triggered`` alert for a fired rule."""
        return Alert(
            rule_id=rule.id,
            target_id=target.id,
            user_id=rule.user_id,
            severity=evaluation.severity,
            message=evaluation.reason,
            status=AlertStatus.TRIGGERED,
            triggered_at=self._now(),
        )

    def transition(self, alert: Alert, status: AlertStatus) -> Alert:
        """Return ``alert`` moved to ``status``.

        Requesting the current status returns the alert untouched. Timestamps
        are stamped only the first time their state is entered.
        """
        status = AlertStatus(status)
        if status == alert.status:
            return alert

        if status not in TRANSITIONS[alert.status]:
            raise InvalidTransitionError(alert.status.value, status.value)

        now = self._now()
        update = {"status": status}
        if status == AlertStatus.ACKNOWLEDGED and alert.acknowledged_at is None:
            update["acknowledged_at"] = now
        if status == AlertStatus.RESOLVED and alert.resolved_at is None:
            update["resolved_at"] = now

        return alert.model_copy(update=update)

    async def update_status(self, alert_id: int, status: AlertStatus) -> Optional[Alert]:
        """Load, transition and persist an alert.

        Returns None if the alert does not exist.
        """
        alert = await self.store.get_alert(alert_id)
        if alert is None:
            return None

        updated = self.transition(alert, status)
        if updated is alert:
            return alert

        updated = await self.store.update_alert(updated)
        logger.info(f"Alert {alert_id}: {alert.status.value} -> {updated.status.value}")

        await self.store.record_audit_event(
            updated.user_id,
            f"alert.{updated.status.value}",
            "alert",
            updated.id,
            json.dumps({"status": updated.status.value}),
        )
        return updated
