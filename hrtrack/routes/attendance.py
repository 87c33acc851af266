"""
Attendance API routes.
Self-service check-in/out, admin overrides, history and reports.
"""
import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth.security import Principal, get_container, get_current_principal
from ..container import Container
from ..schemas.attendance import (
    AdminAttendanceIn,
    AttendanceActionIn,
    CheckInOut,
    CheckOutOut,
    CurrentStatusOut,
    HistoryOut,
    LocationSummaryOut,
    ReportRowOut,
)

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/check-in", status_code=status.HTTP_201_CREATED, response_model=CheckInOut)
def check_in(
    payload: AttendanceActionIn,
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    result = container.attendance_service.check_in(principal.user_id, principal.role, payload.to_point())
    return {"record": result.record.to_dict(), "is_late": result.is_late, "minutes_late": result.minutes_late}


@router.post("/check-out", response_model=CheckOutOut)
def check_out(
    payload: AttendanceActionIn,
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    result = container.attendance_service.check_out(principal.user_id, principal.role, payload.to_point())
    return {"record": result.record.to_dict(), "total_hours": result.total_hours}


@router.get("/current-status", response_model=CurrentStatusOut)
def current_status(
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    record = container.attendance_service.current_status(principal.user_id)
    return {"record": record.to_dict() if record else None}


@router.get("/history", response_model=HistoryOut)
def history(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=30, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    result = container.attendance_service.history(principal.user_id, start=start, end=end, page=page, limit=limit)
    return {
        "items": [r.to_dict() for r in result.items],
        "total": result.total,
        "page": result.page,
        "limit": result.limit,
        "total_pages": result.total_pages,
    }


@router.get("/report", response_model=List[ReportRowOut])
def report(
    employee_id: Optional[uuid.UUID] = Query(default=None),
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    return container.attendance_service.report(
        principal.user_id, principal.role, employee_id=employee_id, start=start, end=end
    )


@router.get("/location-summary", response_model=LocationSummaryOut)
def location_summary(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    return container.attendance_service.location_summary(principal.role, start=start, end=end)


# Admin overrides

@router.post("/admin/check-in", status_code=status.HTTP_201_CREATED, response_model=CheckInOut)
def admin_check_in(
    payload: AdminAttendanceIn,
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    result = container.attendance_service.admin_check_in(
        principal.user_id, principal.role, payload.employee_id, payload.to_point()
    )
    return {"record": result.record.to_dict(), "is_late": result.is_late, "minutes_late": result.minutes_late}


@router.post("/admin/check-out", response_model=CheckOutOut)
def admin_check_out(
    payload: AdminAttendanceIn,
    principal: Principal = Depends(get_current_principal),
    container: Container = Depends(get_container),
):
    result = container.attendance_service.admin_check_out(
        principal.user_id, principal.role, payload.employee_id, payload.to_point()
    )
    return {"record": result.record.to_dict(), "total_hours": result.total_hours}
