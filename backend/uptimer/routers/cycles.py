"""Cycles API - run a monitoring cycle on demand."""
from fastapi import APIRouter, Request

from ..schemas import CycleSummary

router = APIRouter(prefix="/api/cycles", tags=["cycles"])


@router.post("", response_model=CycleSummary)
async def run_cycle(request: Request):
    """Run one monitoring cycle now. Skipped if a cycle is already running."""
    report = await request.app.state.scheduler.run_cycle()
    return report.summary()
