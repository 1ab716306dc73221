"""Evaluator service - decides whether an alert rule fires for a target."""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..exceptions import ConfigurationError
from ..schemas import AlertRule, CheckResult, RuleType, Severity, Target

logger = logging.getLogger(__name__)


# Severity attached to alerts created by each rule type
SEVERITY_BY_RULE_TYPE = {
    RuleType.CONSECUTIVE_FAILURES: Severity.HIGH,
    RuleType.UPTIME_PERCENTAGE: Severity.MEDIUM,
    RuleType.RESPONSE_TIME: Severity.MEDIUM,
}


@dataclass(frozen=True)
class HistoryWindow:
    """How much check history a rule needs.

    Exactly one of ``limit`` / ``window_hours`` is set.
    """
    limit: Optional[int] = None
    window_hours: Optional[int] = None


@dataclass(frozen=True)
class Evaluation:
    """Outcome of evaluating one rule."""
    fires: bool
    reason: str
    severity: Severity


def calculate_uptime_percentage(checks: Sequence[CheckResult]) -> float:
    """Percentage of successful checks. An empty window counts as fully up."""
    if not checks:
        return 100.0
    successful = sum(1 for check in checks if check.is_success)
    return (successful / len(checks)) * 100


class EvaluatorService:
    """Service for evaluating alert rules against check history."""

    def __init__(self, uptime_window_hours: int = 24):
        self.uptime_window_hours = uptime_window_hours

    def history_window(self, rule: AlertRule) -> HistoryWindow:
        """Return the slice of history ``evaluate`` needs for ``rule``."""
        if rule.rule_type == RuleType.CONSECUTIVE_FAILURES:
            self._require_positive_threshold(rule)
            return HistoryWindow(limit=rule.threshold)
        if rule.rule_type == RuleType.UPTIME_PERCENTAGE:
            return HistoryWindow(window_hours=self.uptime_window_hours)
        return HistoryWindow(limit=1)

    def evaluate(
        self,
        target: Target,
        rule: AlertRule,
        history: Sequence[CheckResult],
    ) -> Evaluation:
        """Evaluate ``rule`` for ``target``.

        ``history`` must be ordered most-recent-first. Raises
        ``ConfigurationError`` for a rule whose threshold makes no sense for
        its type.
        """
        severity = SEVERITY_BY_RULE_TYPE[rule.rule_type]

        if not rule.is_active:
            return Evaluation(False, "Rule is inactive", severity)

        if rule.rule_type == RuleType.CONSECUTIVE_FAILURES:
            fires, reason = self._consecutive_failures(rule, history)
        elif rule.rule_type == RuleType.UPTIME_PERCENTAGE:
            fires, reason = self._uptime_percentage(rule, history)
        elif rule.rule_type == RuleType.RESPONSE_TIME:
            fires, reason = self._response_time(rule, history)
        else:
            raise ConfigurationError(f"Unknown rule type: {rule.rule_type}")

        if fires:
            logger.debug(f"Rule {rule.id} fired for target {target.id}: {reason}")
        return Evaluation(fires, reason, severity)

    def _consecutive_failures(self, rule: AlertRule, history: Sequence[CheckResult]):
        self._require_positive_threshold(rule)

        if len(history) < rule.threshold:
            return False, f"Insufficient history: {len(history)}/{rule.threshold} checks"

        if history[0].is_success:
            return False, "Most recent check succeeded"

        recent = history[: rule.threshold]
        if all(not check.is_success for check in recent):
            return True, f"{rule.threshold} consecutive failures detected"

        failures = 0
        for check in recent:
            if check.is_success:
                break
            failures += 1
        return False, f"{failures}/{rule.threshold} consecutive failures"

    def _uptime_percentage(self, rule: AlertRule, history: Sequence[CheckResult]):
        if not 0 <= rule.threshold <= 100:
            raise ConfigurationError(
                f"Uptime threshold must be between 0 and 100, got {rule.threshold}"
            )

        uptime = calculate_uptime_percentage(history)
        if uptime < rule.threshold:
            return True, (
                f"Uptime {uptime:.2f}% is below {rule.threshold}% "
                f"over the last {len(history)} checks"
            )
        return False, f"Uptime {uptime:.2f}% meets {rule.threshold}%"

    def _response_time(self, rule: AlertRule, history: Sequence[CheckResult]):
        if not history:
            return False, "No checks recorded yet"

        latest = history[0]
        if latest.response_time_ms > rule.threshold:
            return True, (
                f"Response time {latest.response_time_ms}ms exceeds {rule.threshold}ms"
            )
        return False, f"Response time {latest.response_time_ms}ms within {rule.threshold}ms"

    def _require_positive_threshold(self, rule: AlertRule):
        if rule.threshold <= 0:
            raise ConfigurationError(
                f"Rule {rule.id}: threshold must be positive, got {rule.threshold}"
            )
