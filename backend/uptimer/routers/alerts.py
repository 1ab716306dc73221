"""Alerts API - listing alerts and requesting lifecycle transitions."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..exceptions import InvalidTransitionError
from ..schemas import Alert, AlertStatus, AlertStatusUpdate
from ..services.lifecycle import LifecycleService
from ..services.store import MonitoringStore

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def get_store(request: Request) -> MonitoringStore:
    return request.app.state.store


def get_lifecycle(request: Request) -> LifecycleService:
    return request.app.state.lifecycle


@router.get("", response_model=List[Alert])
async def list_alerts(
    user_id: int,
    status: Optional[AlertStatus] = None,
    limit: int = Query(default=50, ge=1, le=500),
    store: MonitoringStore = Depends(get_store),
):
    """List a user's alerts, newest first."""
    return await store.list_alerts(user_id, status=status, limit=limit)


@router.get("/active", response_model=List[Alert])
async def list_active_alerts(
    user_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    store: MonitoringStore = Depends(get_store),
):
    """Alerts still waiting for someone to acknowledge them."""
    return await store.list_alerts(user_id, status=AlertStatus.TRIGGERED, limit=limit)


@router.patch("/{alert_id}", response_model=Alert)
async def update_alert_status(
    alert_id: int,
    update: AlertStatusUpdate,
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    """Acknowledge or resolve an alert."""
    try:
        alert = await lifecycle.update_status(alert_id, update.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)

    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
