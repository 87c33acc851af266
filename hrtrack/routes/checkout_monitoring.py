"""
Checkout monitoring API routes (HR and above).
"""
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth.security import Principal, get_container, require_action
from ..container import CHECKOUT_MONITORING_JOB, Container
from ..schemas.jobs import TriggerOut
from ..schemas.monitoring import MonitoringSettingsUpdate
from ..services.checkout_monitoring import CheckoutMonitoringSettings
from ..services.errors import NotFoundError
from ..services.permissions import Action

router = APIRouter(prefix="/checkout-monitoring", tags=["checkout-monitoring"])

manage_monitoring = require_action(Action.MANAGE_MONITORING)


@router.get("/logs")
def list_logs(
    day: Optional[date] = Query(default=None, alias="date"),
    employee_id: Optional[uuid.UUID] = Query(default=None),
    outcome: Optional[str] = Query(default=None, pattern="^(reminded|escalated|auto_clocked_out)$"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    _: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    items, total = container.monitoring_log.list_logs(
        day=day, employee_id=employee_id, outcome=outcome, limit=limit, offset=offset
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/daily-summary")
def daily_summary(
    day: Optional[date] = Query(default=None, alias="date"),
    _: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    return container.monitoring_log.get_summary(day or container.attendance_service.today())


@router.get("/statistics")
def statistics(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    _: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    return container.monitoring_log.statistics(start, end)


@router.get("/settings", response_model=CheckoutMonitoringSettings)
def get_settings(
    _: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    return container.monitoring_settings.get()


@router.put("/settings", response_model=CheckoutMonitoringSettings)
def update_settings(
    payload: MonitoringSettingsUpdate,
    principal: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    try:
        actor = container.directory.resolve(principal.user_id)
    except NotFoundError:
        actor = None
    return container.monitoring_settings.update(payload.model_dump(exclude_unset=True), updated_by=actor)


@router.post("/trigger", response_model=TriggerOut)
def trigger(
    _: Principal = Depends(manage_monitoring),
    container: Container = Depends(get_container),
):
    return container.scheduler.trigger(CHECKOUT_MONITORING_JOB).to_dict()
