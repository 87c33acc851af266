import uuid
from datetime import datetime, timezone, date as date_type
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    Integer,
    Float,
    Numeric,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """Read-only directory projection, maintained by the HR module"""
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default="employee", index=True)  # superadmin|admin|hr|teamlead|employee
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), index=True)  # employees.id of direct manager
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Attendance(Base):
    """One attendance session per employee per local calendar day"""
    __tablename__ = "attendance"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)  # local day in ATTENDANCE_TZ
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="checked_in")  # checked_in|checked_out
    check_in_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    check_in_location: Mapped[Optional[dict]] = mapped_column(JSON)  # {latitude, longitude, accuracy?, label?}
    check_out_location: Mapped[Optional[dict]] = mapped_column(JSON)
    check_in_distance: Mapped[Optional[float]] = mapped_column(Float)  # meters, as measured at check-in
    distance_from_office: Mapped[Optional[float]] = mapped_column(Float)  # meters, latest measurement
    is_late: Mapped[bool] = mapped_column(Boolean, default=False)
    minutes_late: Mapped[int] = mapped_column(Integer, default=0)
    total_hours: Mapped[Optional[float]] = mapped_column(Numeric(6, 2, asdecimal=False))
    auto_closed: Mapped[bool] = mapped_column(Boolean, default=False)
    closed_by: Mapped[Optional[str]] = mapped_column(String(20))  # employee|admin|system
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # The only enforcement of "one open session per employee per day"
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
        Index("idx_attendance_status_date", "status", "date"),
    )


class AuditLog(Base):
    """Append-only audit log for attendance transitions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # attendance
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CLOCK_IN|CLOCK_OUT|AUTO_CLOCK_OUT
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50))  # admin|hr|employee|system
    source: Mapped[Optional[str]] = mapped_column(String(50))  # app|admin|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )


class CheckoutMonitoringLog(Base):
    """One row per (employee, day, outcome); the unique key is the dedupe guard"""
    __tablename__ = "checkout_monitoring_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    attendance_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)  # reminded|escalated|auto_clocked_out
    minutes_past_expected: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("employee_id", "date", "outcome", name="uq_checkout_log_employee_date_outcome"),
    )


class DailyCheckoutSummary(Base):
    __tablename__ = "daily_checkout_summaries"

    date: Mapped[date_type] = mapped_column(Date, primary_key=True)
    reminded_count: Mapped[int] = mapped_column(Integer, default=0)
    escalated_count: Mapped[int] = mapped_column(Integer, default=0)
    auto_clocked_out_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ScheduledJob(Base):
    """Persisted scheduler config so enable/schedule overrides survive restarts"""
    __tablename__ = "scheduled_jobs"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    schedule: Mapped[str] = mapped_column(String(100), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_status: Mapped[str] = mapped_column(String(20), default="never_run")  # success|partial_failure|failed|never_run
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Notification(Base):
    """Notification outbox for push and email"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # push|email
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed|delivered
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_employee_status", "employee_id", "status"),
    )


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Optional[dict]] = mapped_column(JSON)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
