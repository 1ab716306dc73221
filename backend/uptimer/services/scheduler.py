"""Scheduler service - drives the periodic monitoring cycle.

One cycle:
- lists active targets (ascending id)
- checks each target, bounded by MAX_CONCURRENT_CHECKS
- records the check result
- evaluates every active rule of the target against its history
- creates an alert for each fired rule and dispatches notifications

Cycles are single-flight. APScheduler runs the job with max_instances=1 and
``run_cycle`` itself skips when a previous cycle still holds the lock, which
also covers cycles started through the API.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..exceptions import ConfigurationError
from ..schemas import Alert, AlertRule, Channel, CheckResult, CycleSummary, Target
from .checker import CheckerService
from .email_sender import EmailConfig, EmailSenderService
from .evaluator import EvaluatorService
from .lifecycle import LifecycleService
from .notifier import ChannelResult, NotifierService
from .store import MonitoringStore

logger = logging.getLogger(__name__)

DEDUP_NONE = "none"
DEDUP_OPEN_ALERT = "open_alert"


@dataclass
class TargetOutcome:
    """Everything one target's pipeline produced during a cycle."""
    target_id: int
    check: Optional[CheckResult] = None
    alerts: List[Alert] = field(default_factory=list)
    notifications: List[ChannelResult] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    error: Optional[str] = None
    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def targets_failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.error)

    @property
    def alerts_created(self) -> int:
        return sum(len(outcome.alerts) for outcome in self.outcomes)

    def summary(self) -> CycleSummary:
        return CycleSummary(
            started_at=self.started_at,
            finished_at=self.finished_at,
            skipped=self.skipped,
            targets_checked=len(self.outcomes),
            targets_failed=self.targets_failed,
            alerts_created=self.alerts_created,
        )


class SchedulerService:
    """Service for scheduling and running monitoring cycles."""

    def __init__(
        self,
        store: MonitoringStore,
        checker: CheckerService,
        evaluator: EvaluatorService,
        notifier: NotifierService,
        lifecycle: LifecycleService,
        interval_seconds: int = 60,
        max_concurrent_checks: int = 10,
        dedup_policy: str = DEDUP_NONE,
        now: Callable[[], datetime] = datetime.utcnow,
        scheduler_factory: Callable[[], AsyncIOScheduler] = AsyncIOScheduler,
    ):
        if interval_seconds <= 0:
            raise ConfigurationError(f"Cycle interval must be positive, got {interval_seconds}")
        if dedup_policy not in (DEDUP_NONE, DEDUP_OPEN_ALERT):
            raise ConfigurationError(f"Unknown alert dedup policy: {dedup_policy}")

        self.store = store
        self.checker = checker
        self.evaluator = evaluator
        self.notifier = notifier
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.max_concurrent_checks = max(1, max_concurrent_checks)
        self.dedup_policy = dedup_policy
        self._now = now
        self._scheduler_factory = scheduler_factory
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._cycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the recurring cycle. The first cycle runs immediately."""
        if self._running:
            return

        self.scheduler = self._scheduler_factory()
        self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="monitoring_cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (interval={self.interval_seconds}s, "
            f"max_concurrent={self.max_concurrent_checks}, dedup={self.dedup_policy})"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def run_cycle(self) -> CycleReport:
        """Run one pass over all active targets."""
        report = CycleReport(started_at=self._now())

        if self._cycle_lock.locked():
            logger.warning("Previous monitoring cycle still running, skipping")
            report.skipped = True
            report.finished_at = report.started_at
            return report

        async with self._cycle_lock:
            logger.info("Starting monitoring cycle")
            try:
                targets = sorted(await self.store.list_active_targets(), key=lambda t: t.id)
            except Exception as e:
                logger.error(f"Error listing active targets: {e}")
                report.error = str(e)
                report.finished_at = self._now()
                return report

            semaphore = asyncio.Semaphore(self.max_concurrent_checks)

            async def check_with_limit(target: Target) -> TargetOutcome:
                async with semaphore:
                    return await self._process_target(target)

            report.outcomes = list(
                await asyncio.gather(*[check_with_limit(t) for t in targets])
            )
            report.finished_at = self._now()
            logger.info(
                f"Monitoring cycle completed: {len(targets)} targets, "
                f"{report.targets_failed} errors, {report.alerts_created} alerts"
            )
            return report

    async def _process_target(self, target: Target) -> TargetOutcome:
        """Check, record, evaluate and notify for one target.

        Any failure ends this target's pipeline for the cycle and is recorded
        on the outcome; it never reaches the other targets.
        """
        outcome = TargetOutcome(target_id=target.id)
        try:
            check = await self.checker.check(target)
            outcome.check = check
            await self.store.insert_check_result(check)

            logger.debug(
                f"Target {target.id} ({target.name}): "
                f"{'up' if check.is_success else 'down'} in {check.response_time_ms}ms"
            )

            rules = await self.store.list_active_rules_for_target(target.id)
            for rule in rules:
                try:
                    await self._apply_rule(target, rule, outcome)
                except ConfigurationError as e:
                    logger.warning(f"Skipping rule {rule.id} for target {target.id}: {e.message}")
        except Exception as e:
            logger.error(f"Error checking target {target.id}: {e}")
            outcome.error = str(e) or type(e).__name__
        return outcome

    async def _apply_rule(self, target: Target, rule: AlertRule, outcome: TargetOutcome):
        if not rule.is_active:
            return

        window = self.evaluator.history_window(rule)
        history = await self.store.list_recent_checks(
            target.id, limit=window.limit, window_hours=window.window_hours
        )
        evaluation = self.evaluator.evaluate(target, rule, history)
        if not evaluation.fires:
            return

        if self.dedup_policy == DEDUP_OPEN_ALERT:
            open_alert = await self.store.get_open_alert_for_rule(rule.id)
            if open_alert is not None:
                logger.info(
                    f"Rule {rule.id} still firing for target {target.id}; "
                    f"alert {open_alert.id} is {open_alert.status.value}"
                )
                return

        alert = await self.store.insert_alert(self.lifecycle.create(rule, target, evaluation))
        outcome.alerts.append(alert)
        logger.info(f"Alert {alert.id} triggered for target {target.id}: {alert.message}")

        await self.store.record_audit_event(
            rule.user_id, "alert.triggered", "alert", alert.id, evaluation.reason
        )

        notification_settings = await self.store.get_notification_settings(rule.user_id)
        recipient = None
        if Channel.EMAIL in rule.notification_channels:
            recipient = await self.store.get_user_email(rule.user_id)

        outcome.notifications.extend(
            await self.notifier.dispatch(
                alert, rule.notification_channels, notification_settings, recipient
            )
        )


def build_scheduler_service(store: Optional[MonitoringStore] = None) -> SchedulerService:
    """Wire a scheduler from application settings."""
    store = store or MonitoringStore()
    return SchedulerService(
        store=store,
        checker=CheckerService(),
        evaluator=EvaluatorService(uptime_window_hours=settings.uptime_window_hours),
        notifier=NotifierService(
            email_sender=EmailSenderService(EmailConfig.from_settings()),
            timeout=settings.notification_timeout_seconds,
        ),
        lifecycle=LifecycleService(store),
        interval_seconds=settings.check_cycle_seconds,
        max_concurrent_checks=settings.max_concurrent_checks,
        dedup_policy=settings.alert_dedup_policy,
    )
