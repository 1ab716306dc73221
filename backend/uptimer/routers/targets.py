"""Targets API - on-demand checks, check history and health summaries."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..schemas import CheckResult, Target, TargetSummary
from ..services.checker import CheckerService
from ..services.evaluator import calculate_uptime_percentage
from ..services.store import MonitoringStore
from .alerts import get_store

router = APIRouter(prefix="/api/targets", tags=["targets"])

SUMMARY_WINDOW_HOURS = 24


def get_checker(request: Request) -> CheckerService:
    return request.app.state.checker


async def get_target_or_404(target_id: int, store: MonitoringStore = Depends(get_store)) -> Target:
    target = await store.get_target(target_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Target not found")
    return target


@router.post("/{target_id}/test", response_model=CheckResult)
async def run_test_check(
    target: Target = Depends(get_target_or_404),
    checker: CheckerService = Depends(get_checker),
):
    """Check a target right now. The result is returned, not stored."""
    return await checker.check(target)


@router.get("/{target_id}/checks", response_model=List[CheckResult])
async def list_checks(
    target: Target = Depends(get_target_or_404),
    limit: int = Query(default=100, ge=1, le=1000),
    hours: Optional[int] = Query(default=None, ge=1),
    store: MonitoringStore = Depends(get_store),
):
    """Check history, newest first. ``hours`` takes precedence over ``limit``."""
    if hours is not None:
        return await store.list_recent_checks(target.id, window_hours=hours)
    return await store.list_recent_checks(target.id, limit=limit)


@router.get("/{target_id}/summary", response_model=TargetSummary)
async def get_summary(
    target: Target = Depends(get_target_or_404),
    store: MonitoringStore = Depends(get_store),
):
    checks = await store.list_recent_checks(target.id, window_hours=SUMMARY_WINDOW_HOURS)
    average = sum(c.response_time_ms for c in checks) / len(checks) if checks else 0

    return TargetSummary(
        target_id=target.id,
        window_hours=SUMMARY_WINDOW_HOURS,
        uptime_percentage=calculate_uptime_percentage(checks),
        average_response_time_ms=round(average),
        total_checks=len(checks),
        successful_checks=sum(1 for c in checks if c.is_success),
        last_check=checks[0] if checks else None,
    )
