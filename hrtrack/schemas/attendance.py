import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..services.geofence import GeoPoint


class LocationIn(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class AttendanceActionIn(BaseModel):
    location: Optional[LocationIn] = None
    label: Optional[str] = Field(default=None, max_length=255)

    @field_validator("label", mode="before")
    @classmethod
    def _blank_label(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_point(self) -> Optional[GeoPoint]:
        if self.location is None:
            return None
        return GeoPoint(
            latitude=self.location.latitude,
            longitude=self.location.longitude,
            accuracy=self.location.accuracy,
            label=self.label,
        )


class AdminAttendanceIn(AttendanceActionIn):
    employee_id: uuid.UUID


class RecordOut(BaseModel):
    id: str
    employee_id: str
    date: date
    status: str
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    check_in_location: Optional[Dict[str, Any]] = None
    check_out_location: Optional[Dict[str, Any]] = None
    check_in_distance: Optional[float] = None
    distance_from_office: Optional[float] = None
    is_late: bool = False
    minutes_late: int = 0
    total_hours: Optional[float] = None
    auto_closed: bool = False
    closed_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CheckInOut(BaseModel):
    record: RecordOut
    is_late: bool
    minutes_late: int


class CheckOutOut(BaseModel):
    record: RecordOut
    total_hours: float


class CurrentStatusOut(BaseModel):
    record: Optional[RecordOut] = None


class HistoryOut(BaseModel):
    items: List[RecordOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ReportRowOut(RecordOut):
    employee_name: Optional[str] = None
    location_status: str


class LocationSummaryOut(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    total: int
    onsite: int
    remote: int
    unknown: int
    late_count: int
    average_minutes_late: float
