from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..models.models import Attendance
from ..services.audit import AuditEntry, add_audit_log, compute_diff
from ..services.errors import AlreadyCheckedIn
from ..services.time_rules import ensure_utc, utc_now

CHECKED_IN = "checked_in"
CHECKED_OUT = "checked_out"


@dataclass(frozen=True)
class AttendanceRecord:
    id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    status: str
    check_in_time: datetime
    check_out_time: Optional[datetime]
    check_in_location: Optional[dict]
    check_out_location: Optional[dict]
    check_in_distance: Optional[float]
    distance_from_office: Optional[float]
    is_late: bool
    minutes_late: int
    total_hours: Optional[float]
    auto_closed: bool
    closed_by: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @property
    def is_open(self) -> bool:
        return self.status == CHECKED_IN

    def to_dict(self) -> dict:
        def iso(value):
            return value.isoformat() if value is not None else None

        return {
            "id": str(self.id),
            "employee_id": str(self.employee_id),
            "date": self.date.isoformat(),
            "status": self.status,
            "check_in_time": iso(self.check_in_time),
            "check_out_time": iso(self.check_out_time),
            "check_in_location": self.check_in_location,
            "check_out_location": self.check_out_location,
            "check_in_distance": self.check_in_distance,
            "distance_from_office": self.distance_from_office,
            "is_late": self.is_late,
            "minutes_late": self.minutes_late,
            "total_hours": self.total_hours,
            "auto_closed": self.auto_closed,
            "closed_by": self.closed_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


@dataclass(frozen=True)
class NewCheckIn:
    employee_id: uuid.UUID
    date: date
    check_in_time: datetime
    location: Optional[dict]
    distance: Optional[float]
    is_late: bool
    minutes_late: int


@dataclass(frozen=True)
class CheckOutUpdate:
    check_out_time: datetime
    location: Optional[dict]
    distance: Optional[float]
    total_hours: float
    closed_by: str  # employee|admin|system
    auto_closed: bool = False


@dataclass
class Page:
    items: List[AttendanceRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 30

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit > 0 else 0


class AttendanceRepository(Protocol):
    """
    Persistence contract for attendance records.

    ``create_check_in`` and ``close_if_open`` are the only mutators, and both are
    single atomic writes: callers must not pre-check state before calling them.
    """

    def create_check_in(self, data: NewCheckIn, audit: Optional[AuditEntry] = None) -> AttendanceRecord:
        """Insert a checked_in record; raises AlreadyCheckedIn if (employee, date) exists."""
        raise NotImplementedError

    def close_if_open(
        self, record_id: uuid.UUID, data: CheckOutUpdate, audit: Optional[AuditEntry] = None
    ) -> Optional[AttendanceRecord]:
        """Close the record iff it is still checked_in; None when another mutator won."""
        raise NotImplementedError

    def get(self, record_id: uuid.UUID) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_employee_and_date(self, employee_id: uuid.UUID, day: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_open(
        self, *, on_date: Optional[date] = None, before: Optional[date] = None
    ) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def history(
        self,
        employee_id: uuid.UUID,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        page: int = 1,
        limit: int = 30,
    ) -> Page:
        raise NotImplementedError

    def report_rows(
        self, *, employee_id: Optional[uuid.UUID] = None, start: Optional[date] = None, end: Optional[date] = None
    ) -> Sequence[AttendanceRecord]:
        raise NotImplementedError


def _to_record(row: Attendance) -> AttendanceRecord:
    return AttendanceRecord(
        id=row.id,
        employee_id=row.employee_id,
        date=row.date,
        status=row.status,
        check_in_time=ensure_utc(row.check_in_time),
        check_out_time=ensure_utc(row.check_out_time) if row.check_out_time else None,
        check_in_location=row.check_in_location,
        check_out_location=row.check_out_location,
        check_in_distance=row.check_in_distance,
        distance_from_office=row.distance_from_office,
        is_late=bool(row.is_late),
        minutes_late=row.minutes_late or 0,
        total_hours=float(row.total_hours) if row.total_hours is not None else None,
        auto_closed=bool(row.auto_closed),
        closed_by=row.closed_by,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
    )


class SqlAttendanceRepository:
    """SQLAlchemy implementation; one short transaction per call."""

    def __init__(self, session_factory: sessionmaker, integrity_secret: Optional[str] = None):
        self._session_factory = session_factory
        self._integrity_secret = integrity_secret

    def create_check_in(self, data: NewCheckIn, audit: Optional[AuditEntry] = None) -> AttendanceRecord:
        row = Attendance(
            id=uuid.uuid4(),
            employee_id=data.employee_id,
            date=data.date,
            status=CHECKED_IN,
            check_in_time=ensure_utc(data.check_in_time),
            check_in_location=data.location,
            check_in_distance=data.distance,
            distance_from_office=data.distance,
            is_late=data.is_late,
            minutes_late=data.minutes_late,
            auto_closed=False,
        )
        try:
            with self._session_factory() as db, db.begin():
                db.add(row)
                # Flush first so a unique violation surfaces before the audit row is staged
                db.flush()
                if audit is not None:
                    add_audit_log(
                        db, row.id, audit,
                        changes_json={"status": {"before": None, "after": CHECKED_IN}},
                        integrity_secret=self._integrity_secret,
                    )
        except IntegrityError:
            raise AlreadyCheckedIn()
        return _to_record(row)

    def close_if_open(
        self, record_id: uuid.UUID, data: CheckOutUpdate, audit: Optional[AuditEntry] = None
    ) -> Optional[AttendanceRecord]:
        stmt = (
            update(Attendance)
            .where(Attendance.id == record_id, Attendance.status == CHECKED_IN)
            .values(
                status=CHECKED_OUT,
                check_out_time=ensure_utc(data.check_out_time),
                check_out_location=data.location,
                distance_from_office=data.distance,
                total_hours=data.total_hours,
                auto_closed=data.auto_closed,
                closed_by=data.closed_by,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db, db.begin():
            result = db.execute(stmt)
            if result.rowcount != 1:
                return None
            if audit is not None:
                add_audit_log(
                    db, record_id, audit,
                    changes_json=compute_diff(
                        {"status": CHECKED_IN, "check_out_time": None, "total_hours": None},
                        {
                            "status": CHECKED_OUT,
                            "check_out_time": ensure_utc(data.check_out_time).isoformat(),
                            "total_hours": data.total_hours,
                        },
                    ),
                    integrity_secret=self._integrity_secret,
                )
            row = db.get(Attendance, record_id)
            return _to_record(row)

    def get(self, record_id: uuid.UUID) -> Optional[AttendanceRecord]:
        with self._session_factory() as db:
            row = db.get(Attendance, record_id)
            return _to_record(row) if row else None

    def get_for_employee_and_date(self, employee_id: uuid.UUID, day: date) -> Optional[AttendanceRecord]:
        with self._session_factory() as db:
            row = (
                db.query(Attendance)
                .filter(Attendance.employee_id == employee_id, Attendance.date == day)
                .first()
            )
            return _to_record(row) if row else None

    def list_open(
        self, *, on_date: Optional[date] = None, before: Optional[date] = None
    ) -> Sequence[AttendanceRecord]:
        with self._session_factory() as db:
            query = db.query(Attendance).filter(Attendance.status == CHECKED_IN)
            if on_date is not None:
                query = query.filter(Attendance.date == on_date)
            if before is not None:
                query = query.filter(Attendance.date < before)
            rows = query.order_by(Attendance.date.asc(), Attendance.check_in_time.asc()).all()
            return [_to_record(r) for r in rows]

    def history(
        self,
        employee_id: uuid.UUID,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        page: int = 1,
        limit: int = 30,
    ) -> Page:
        limit = min(max(1, limit), 200)
        page = max(1, page)
        offset = (page - 1) * limit

        with self._session_factory() as db:
            query = db.query(Attendance).filter(Attendance.employee_id == employee_id)
            if start is not None:
                query = query.filter(Attendance.date >= start)
            if end is not None:
                query = query.filter(Attendance.date <= end)
            total = query.with_entities(func.count(Attendance.id)).scalar() or 0
            rows = query.order_by(Attendance.date.desc()).offset(offset).limit(limit).all()
            return Page(items=[_to_record(r) for r in rows], total=total, page=page, limit=limit)

    def report_rows(
        self, *, employee_id: Optional[uuid.UUID] = None, start: Optional[date] = None, end: Optional[date] = None
    ) -> Sequence[AttendanceRecord]:
        with self._session_factory() as db:
            query = db.query(Attendance)
            if employee_id is not None:
                query = query.filter(Attendance.employee_id == employee_id)
            if start is not None:
                query = query.filter(Attendance.date >= start)
            if end is not None:
                query = query.filter(Attendance.date <= end)
            rows = query.order_by(Attendance.date.desc(), Attendance.check_in_time.desc()).all()
            return [_to_record(r) for r in rows]


def date_range_ok(start: Optional[date], end: Optional[date]) -> Tuple[Optional[date], Optional[date]]:
    if start and end and start > end:
        return end, start
    return start, end
