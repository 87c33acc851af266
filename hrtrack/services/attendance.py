"""
Attendance state machine.
NoRecord -> CheckedIn -> CheckedOut, per employee and local calendar day.

Every transition goes through one of the repository's two atomic writes, so a user,
an admin and the auto clock-out job can race on the same record and exactly one wins.
"""
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

import structlog

from ..config import Settings
from ..repositories.attendance import (
    AttendanceRecord,
    AttendanceRepository,
    CheckOutUpdate,
    NewCheckIn,
    Page,
    date_range_ok,
)
from .audit import AuditEntry
from .directory import EmployeeDirectory, parse_uuid
from .errors import (
    GeofenceViolation,
    NoActiveCheckIn,
    NotFoundError,
    SundayBlocked,
    ValidationError,
)
from .geofence import GeoPoint, GeofencePolicy, distance, location_status
from .permissions import Action, AuthorizationGateway, Role, require
from .time_rules import (
    auto_clockout_cutoff,
    ensure_utc,
    hours_between,
    lateness,
    local_day,
    parse_hhmm,
    utc_now,
    utc_to_local,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class CheckInResult:
    record: AttendanceRecord
    is_late: bool
    minutes_late: int


@dataclass(frozen=True)
class CheckOutResult:
    record: AttendanceRecord
    total_hours: float


def validate_location(location: Optional[GeoPoint], required: bool = True) -> Optional[GeoPoint]:
    """Coordinates must be finite and in range; raises ValidationError otherwise."""
    if location is None:
        if required:
            raise ValidationError("Location is required")
        return None
    lat, lng = location.latitude, location.longitude
    if lat is None or lng is None:
        raise ValidationError("Latitude and longitude are required")
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError("Latitude and longitude must be numbers")
    if math.isnan(lat) or math.isnan(lng) or not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValidationError("Coordinates are out of range")
    if location.accuracy is not None and location.accuracy < 0:
        raise ValidationError("Accuracy must be positive")
    return location


class AttendanceService:
    def __init__(
        self,
        repository: AttendanceRepository,
        directory: EmployeeDirectory,
        authz: AuthorizationGateway,
        policy: GeofencePolicy,
        settings: Settings,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.directory = directory
        self.authz = authz
        self.policy = policy
        self.settings = settings
        self.clock = clock
        self.tz = settings.attendance_tz
        self.work_start = parse_hhmm(settings.work_start_time)

    def now(self) -> datetime:
        return ensure_utc(self.clock())

    def today(self) -> date:
        return local_day(self.now(), self.tz)

    def _ensure_working_day(self, now: datetime) -> None:
        if self.policy.is_blocked_day(utc_to_local(now, self.tz).weekday()):
            raise SundayBlocked()

    def _check_geofence(self, location: GeoPoint, now: datetime) -> float:
        decision = self.policy.validate(location, utc_to_local(now, self.tz).weekday())
        if not decision.allowed:
            raise GeofenceViolation(decision.distance, decision.max_allowed_meters or 0)
        return decision.distance

    def _distance_or_none(self, location: Optional[GeoPoint]) -> Optional[float]:
        if location is None:
            return None
        return distance(location, self.policy.office)

    def _target_employee(self, employee_id) -> uuid.UUID:
        eid = parse_uuid(employee_id, "employee")
        if not self.directory.exists(eid):
            raise NotFoundError("Employee not found")
        return eid

    def _open_record(self, employee_id: uuid.UUID, day: date) -> AttendanceRecord:
        record = self.repository.get_for_employee_and_date(employee_id, day)
        if record is None or not record.is_open:
            raise NoActiveCheckIn()
        return record

    def _insert(
        self,
        employee_id: uuid.UUID,
        now: datetime,
        location: Optional[GeoPoint],
        distance: Optional[float],
        audit: AuditEntry,
    ) -> CheckInResult:
        is_late, minutes_late = lateness(now, self.work_start, self.tz)
        record = self.repository.create_check_in(
            NewCheckIn(
                employee_id=employee_id,
                date=local_day(now, self.tz),
                check_in_time=now,
                location=location.as_dict() if location else None,
                distance=distance,
                is_late=is_late,
                minutes_late=minutes_late,
            ),
            audit=audit,
        )
        logger.info(
            "attendance_checked_in",
            employee_id=str(employee_id),
            date=record.date.isoformat(),
            is_late=is_late,
            minutes_late=minutes_late,
            source=audit.source,
        )
        return CheckInResult(record, is_late, minutes_late)

    def _close(
        self,
        record: AttendanceRecord,
        check_out_time: datetime,
        location: Optional[GeoPoint],
        distance: Optional[float],
        closed_by: str,
        audit: AuditEntry,
        auto_closed: bool = False,
    ) -> Optional[AttendanceRecord]:
        # Clock skew or a stale cutoff must never produce negative hours
        check_out_time = max(ensure_utc(check_out_time), record.check_in_time)
        total = hours_between(record.check_in_time, check_out_time)
        return self.repository.close_if_open(
            record.id,
            CheckOutUpdate(
                check_out_time=check_out_time,
                location=location.as_dict() if location else None,
                distance=distance,
                total_hours=total,
                closed_by=closed_by,
                auto_closed=auto_closed,
            ),
            audit=audit,
        )

    # Self-service

    def check_in(self, user_id, role: Role, location: Optional[GeoPoint]) -> CheckInResult:
        now = self.now()
        self._ensure_working_day(now)
        require(self.authz, role, Action.SELF_ATTENDANCE)
        employee_id = self.directory.resolve(user_id)
        location = validate_location(location)
        meters = self._check_geofence(location, now)

        audit = AuditEntry(
            action="CLOCK_IN", actor_id=employee_id, actor_role=role.label, source="app",
            context={"distance_m": round(meters, 1)},
        )
        return self._insert(employee_id, now, location, meters, audit)

    def check_out(self, user_id, role: Role, location: Optional[GeoPoint]) -> CheckOutResult:
        now = self.now()
        self._ensure_working_day(now)
        require(self.authz, role, Action.SELF_ATTENDANCE)
        employee_id = self.directory.resolve(user_id)
        location = validate_location(location)
        meters = self._check_geofence(location, now)

        record = self._open_record(employee_id, local_day(now, self.tz))
        audit = AuditEntry(
            action="CLOCK_OUT", actor_id=employee_id, actor_role=role.label, source="app",
            context={"distance_m": round(meters, 1)},
        )
        closed = self._close(record, now, location, meters, "employee", audit)
        if closed is None:
            raise NoActiveCheckIn()
        logger.info("attendance_checked_out", employee_id=str(employee_id), total_hours=closed.total_hours)
        return CheckOutResult(closed, closed.total_hours)

    # Admin overrides: no geofence, same working-day rule and computed fields

    def admin_check_in(
        self, actor_user_id, actor_role: Role, employee_id, location: Optional[GeoPoint] = None
    ) -> CheckInResult:
        now = self.now()
        require(self.authz, actor_role, Action.ADMIN_ATTENDANCE)
        self._ensure_working_day(now)
        target = self._target_employee(employee_id)
        location = validate_location(location, required=False)

        audit = AuditEntry(
            action="CLOCK_IN", actor_id=self._actor_employee(actor_user_id), actor_role=actor_role.label,
            source="admin", context={"on_behalf_of": str(target)},
        )
        return self._insert(target, now, location, self._distance_or_none(location), audit)

    def admin_check_out(
        self, actor_user_id, actor_role: Role, employee_id, location: Optional[GeoPoint] = None
    ) -> CheckOutResult:
        now = self.now()
        require(self.authz, actor_role, Action.ADMIN_ATTENDANCE)
        self._ensure_working_day(now)
        target = self._target_employee(employee_id)
        location = validate_location(location, required=False)

        record = self._open_record(target, local_day(now, self.tz))
        audit = AuditEntry(
            action="CLOCK_OUT", actor_id=self._actor_employee(actor_user_id), actor_role=actor_role.label,
            source="admin", context={"on_behalf_of": str(target)},
        )
        closed = self._close(record, now, location, self._distance_or_none(location), "admin", audit)
        if closed is None:
            raise NoActiveCheckIn()
        logger.info("attendance_admin_checked_out", employee_id=str(target), total_hours=closed.total_hours)
        return CheckOutResult(closed, closed.total_hours)

    def _actor_employee(self, user_id) -> Optional[uuid.UUID]:
        # Superadmins may have no directory entry; the audit row then carries no actor id
        try:
            return self.directory.resolve(user_id)
        except NotFoundError:
            return None

    # System

    def auto_close(self, record: AttendanceRecord, cutoff: Optional[datetime] = None) -> Optional[AttendanceRecord]:
        """Force-close ``record`` at ``cutoff``; None when another mutator already closed it."""
        if cutoff is None:
            cutoff = auto_clockout_cutoff(record.date, self.tz, self.settings.auto_clockout_grace_minutes)
        audit = AuditEntry(
            action="AUTO_CLOCK_OUT", actor_role="system", source="system",
            context={"cutoff": ensure_utc(cutoff).isoformat()},
        )
        return self._close(record, cutoff, None, None, "system", audit, auto_closed=True)

    # Queries

    def current_status(self, user_id) -> Optional[AttendanceRecord]:
        employee_id = self.directory.resolve(user_id)
        return self.repository.get_for_employee_and_date(employee_id, self.today())

    def history(
        self,
        user_id,
        start: Optional[date] = None,
        end: Optional[date] = None,
        page: int = 1,
        limit: int = 30,
    ) -> Page:
        employee_id = self.directory.resolve(user_id)
        start, end = date_range_ok(start, end)
        return self.repository.history(employee_id, start=start, end=end, page=page, limit=limit)

    def report(
        self,
        user_id,
        role: Role,
        employee_id=None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Dict]:
        """
        Flattened attendance rows with a computed location status.

        Callers without report rights may only ask for themselves.
        """
        if self.authz.is_allowed(role, Action.VIEW_REPORTS):
            target = parse_uuid(employee_id, "employee") if employee_id else None
        else:
            own = self.directory.resolve(user_id)
            if employee_id and parse_uuid(employee_id, "employee") != own:
                require(self.authz, role, Action.VIEW_REPORTS)
            target = own

        start, end = date_range_ok(start, end)
        records = self.repository.report_rows(employee_id=target, start=start, end=end)
        names = self.directory.names_for(list({r.employee_id for r in records}))

        rows = []
        for r in records:
            row = r.to_dict()
            row["employee_name"] = names.get(r.employee_id)
            row["location_status"] = self._location_status(r)
            rows.append(row)
        return rows

    def location_summary(self, role: Role, start: Optional[date] = None, end: Optional[date] = None) -> Dict:
        require(self.authz, role, Action.VIEW_REPORTS)
        start, end = date_range_ok(start, end)
        records = self.repository.report_rows(start=start, end=end)

        counts = {"onsite": 0, "remote": 0, "unknown": 0}
        late = [r.minutes_late for r in records if r.is_late]
        for r in records:
            counts[self._location_status(r)] += 1
        return {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
            "total": len(records),
            **counts,
            "late_count": len(late),
            "average_minutes_late": round(sum(late) / len(late), 1) if late else 0,
        }

    def _location_status(self, record: AttendanceRecord) -> str:
        return location_status(
            GeoPoint.from_dict(record.check_in_location),
            self.policy.office,
            self.settings.onsite_threshold_m,
        )
