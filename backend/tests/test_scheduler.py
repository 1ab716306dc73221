"""Tests for the monitoring cycle."""
import asyncio
import time

import httpx
import pytest

from uptimer.exceptions import ConfigurationError
from uptimer.schemas import AlertStatus, Channel, CheckResult, NotificationSettings, RuleType
from uptimer.services.checker import CheckerService
from uptimer.services.evaluator import EvaluatorService
from uptimer.services.lifecycle import LifecycleService
from uptimer.services.scheduler import DEDUP_OPEN_ALERT, SchedulerService

from conftest import FakeStore, RecordingNotifier, make_check, make_rule, make_target


class ScriptedChecker:
    """Returns pre-set success/failure per target."""

    def __init__(self, outcomes=None, default=True):
        self.outcomes = outcomes or {}
        self.default = default
        self.checked = []

    async def check(self, target):
        self.checked.append(target.id)
        success = self.outcomes.get(target.id, self.default)
        return make_check(success, target_id=target.id)


def make_scheduler(store, checker=None, notifier=None, **kwargs):
    return SchedulerService(
        store=store,
        checker=checker or ScriptedChecker(),
        evaluator=EvaluatorService(),
        notifier=notifier or RecordingNotifier(),
        lifecycle=LifecycleService(store),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_cycle_checks_active_targets_in_id_order():
    store = FakeStore(targets=[
        make_target(3), make_target(1), make_target(2, is_active=False), make_target(5),
    ])
    checker = ScriptedChecker()

    report = await make_scheduler(store, checker, max_concurrent_checks=1).run_cycle()

    assert checker.checked == [1, 3, 5]
    assert [o.target_id for o in report.outcomes] == [1, 3, 5]
    assert [c.target_id for c in store.checks] == [1, 3, 5]
    assert report.targets_failed == 0
    assert report.finished_at is not None


@pytest.mark.asyncio
async def test_hung_target_does_not_hold_up_the_others():
    async def handler(request):
        if request.url.host == "service-3.example.com":
            await asyncio.sleep(30)
        return httpx.Response(200)

    targets = [make_target(i, timeout=1) for i in range(1, 6)]
    store = FakeStore(targets=targets)
    checker = CheckerService(transport=httpx.MockTransport(handler))
    scheduler = make_scheduler(store, checker)

    started = time.monotonic()
    report = await asyncio.wait_for(scheduler.run_cycle(), timeout=10)
    elapsed = time.monotonic() - started

    results = {c.target_id: c for c in store.checks}
    assert sorted(results) == [1, 2, 3, 4, 5]
    assert all(results[i].is_success for i in (1, 2, 4, 5))
    assert not results[3].is_success
    assert results[3].error_message == "Request timeout after 1s"
    assert elapsed < 5
    assert report.targets_failed == 0


@pytest.mark.asyncio
async def test_consecutive_failures_creates_alert_and_notifies():
    rule = make_rule(threshold=3, notification_channels=frozenset({Channel.EMAIL, Channel.SLACK}))
    settings = NotificationSettings(user_id=1, slack_webhook_url="https://hooks.slack.com/x")
    store = FakeStore(
        targets=[make_target(1)],
        rules={1: [rule]},
        settings={1: settings},
        emails={1: "owner@example.com"},
    )
    store.checks = [make_check(False), make_check(False)]
    notifier = RecordingNotifier()

    report = await make_scheduler(store, ScriptedChecker(default=False), notifier).run_cycle()

    assert report.alerts_created == 1
    alert = store.alerts[0]
    assert alert.status == AlertStatus.TRIGGERED
    assert alert.severity.value == "high"
    assert alert.message == "3 consecutive failures detected"
    assert notifier.calls == [(alert, {Channel.EMAIL, Channel.SLACK}, settings, "owner@example.com")]
    assert store.audit_events == [
        (1, "alert.triggered", "alert", alert.id, "3 consecutive failures detected"),
    ]


@pytest.mark.asyncio
async def test_two_failures_do_not_alert():
    store = FakeStore(targets=[make_target(1)], rules={1: [make_rule(threshold=3)]})
    store.checks = [make_check(True), make_check(False)]

    report = await make_scheduler(store, ScriptedChecker(default=False)).run_cycle()

    assert report.alerts_created == 0


@pytest.mark.asyncio
async def test_alert_repeats_every_cycle_without_dedup():
    store = FakeStore(targets=[make_target(1)], rules={1: [make_rule(threshold=1)]})
    scheduler = make_scheduler(store, ScriptedChecker(default=False))

    await scheduler.run_cycle()
    await scheduler.run_cycle()

    assert len(store.alerts) == 2


@pytest.mark.asyncio
async def test_open_alert_dedup_waits_for_resolution():
    store = FakeStore(targets=[make_target(1)], rules={1: [make_rule(threshold=1)]})
    scheduler = make_scheduler(store, ScriptedChecker(default=False), dedup_policy=DEDUP_OPEN_ALERT)

    await scheduler.run_cycle()
    await scheduler.run_cycle()
    assert len(store.alerts) == 1

    await scheduler.lifecycle.update_status(store.alerts[0].id, AlertStatus.RESOLVED)
    await scheduler.run_cycle()
    assert len(store.alerts) == 2


@pytest.mark.asyncio
async def test_inactive_rules_are_not_evaluated():
    store = FakeStore(targets=[make_target(1)], rules={1: [make_rule(threshold=1, is_active=False)]})

    report = await make_scheduler(store, ScriptedChecker(default=False)).run_cycle()

    assert report.alerts_created == 0


@pytest.mark.asyncio
async def test_persistence_failure_is_isolated_to_its_target():
    store = FakeStore(
        targets=[make_target(1), make_target(2), make_target(3)],
        rules={3: [make_rule(target_id=3, threshold=1)]},
    )
    store.failing_check_inserts = {2}

    report = await make_scheduler(store, ScriptedChecker(default=False)).run_cycle()

    outcomes = {o.target_id: o for o in report.outcomes}
    assert outcomes[2].error == "database is locked"
    assert outcomes[1].error is None
    assert report.targets_failed == 1
    assert [c.target_id for c in store.checks] == [1, 3]
    assert [a.target_id for a in store.alerts] == [3]


@pytest.mark.asyncio
async def test_misconfigured_rule_is_skipped_and_others_still_run():
    bad = make_rule(rule_id=1, threshold=0)
    good = make_rule(rule_id=2, rule_type=RuleType.RESPONSE_TIME, threshold=10)
    store = FakeStore(targets=[make_target(1)], rules={1: [bad, good]})

    report = await make_scheduler(store, ScriptedChecker(default=False)).run_cycle()

    assert report.outcomes[0].error is None
    assert [a.rule_id for a in store.alerts] == [2]


@pytest.mark.asyncio
async def test_target_listing_failure_is_reported_not_raised():
    class BrokenStore(FakeStore):
        async def list_active_targets(self):
            raise RuntimeError("database unavailable")

    report = await make_scheduler(BrokenStore()).run_cycle()

    assert report.error == "database unavailable"
    assert report.outcomes == []


@pytest.mark.asyncio
async def test_overlapping_cycle_is_skipped():
    release = asyncio.Event()

    class SlowChecker(ScriptedChecker):
        async def check(self, target):
            await release.wait()
            return await super().check(target)

    store = FakeStore(targets=[make_target(1)])
    scheduler = make_scheduler(store, SlowChecker())

    first = asyncio.create_task(scheduler.run_cycle())
    await asyncio.sleep(0)
    second = await scheduler.run_cycle()
    release.set()
    first_report = await first

    assert second.skipped
    assert not first_report.skipped
    assert len(store.checks) == 1


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    in_flight = 0
    peak = 0

    class CountingChecker:
        async def check(self, target):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return CheckResult(target_id=target.id, is_success=True, status_code=200)

    store = FakeStore(targets=[make_target(i) for i in range(1, 11)])

    await make_scheduler(store, CountingChecker(), max_concurrent_checks=3).run_cycle()

    assert peak == 3
    assert len(store.checks) == 10


class FakeAPScheduler:

    def __init__(self):
        self.jobs = []
        self.started = False
        self.shutdown_called = False

    def add_job(self, func, **kwargs):
        self.jobs.append((func, kwargs))

    def start(self):
        self.started = True

    def shutdown(self, wait=True):
        self.shutdown_called = True


def test_start_registers_single_flight_interval_job():
    fake = FakeAPScheduler()
    scheduler = make_scheduler(FakeStore(), interval_seconds=30, scheduler_factory=lambda: fake)

    scheduler.start()
    scheduler.start()

    assert scheduler.running
    assert fake.started
    assert len(fake.jobs) == 1
    func, kwargs = fake.jobs[0]
    assert func == scheduler.run_cycle
    assert kwargs["max_instances"] == 1
    assert kwargs["trigger"].interval.total_seconds() == 30
    assert kwargs["next_run_time"] is not None

    scheduler.stop()
    assert fake.shutdown_called
    assert not scheduler.running


def test_invalid_configuration_is_rejected():
    with pytest.raises(ConfigurationError):
        make_scheduler(FakeStore(), interval_seconds=0)
    with pytest.raises(ConfigurationError):
        make_scheduler(FakeStore(), dedup_policy="sometimes")
