"""
Checkout monitoring.
Evening pass over today's open sessions: remind employees who have not checked out,
escalate to managers and HR when it gets late. Closing the session is left to the
auto clock-out job.
"""
import uuid
from datetime import date
from typing import Dict, List, Optional

import pydantic
import structlog
from pydantic import BaseModel, Field, field_validator, model_validator

from ..config import Settings
from ..repositories.monitoring import SqlMonitoringLog, SqlSettingsStore
from .attendance import AttendanceService
from .errors import PermissionDenied, ValidationError
from .geofence import WEEKDAY_NAMES
from .notifications import Notifier, RoleGroup
from .permissions import Role
from .time_rules import local_day, minutes_past, parse_hhmm, utc_to_local

logger = structlog.get_logger(__name__)

SETTINGS_KEY = "checkout_monitoring"


class CheckoutMonitoringSettings(BaseModel):
    expected_checkout_time: str = "18:00"
    reminder_after_minutes: int = Field(default=0, ge=0)
    escalate_after_minutes: int = Field(default=120, ge=0)
    notify_employee: bool = True
    notify_manager: bool = True
    notify_roles: List[str] = Field(default_factory=lambda: ["hr"])
    work_days: List[str] = Field(default_factory=lambda: WEEKDAY_NAMES[:5])

    @field_validator("expected_checkout_time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        return parse_hhmm(v).strftime("%H:%M")

    @field_validator("notify_roles")
    @classmethod
    def _valid_roles(cls, v: List[str]) -> List[str]:
        try:
            return [Role.parse(r).label for r in v]
        except PermissionDenied as e:
            raise ValueError(e.message)

    @field_validator("work_days")
    @classmethod
    def _valid_days(cls, v: List[str]) -> List[str]:
        days = [d.strip().lower() for d in v]
        unknown = [d for d in days if d not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown work days: {', '.join(unknown)}")
        return days

    @model_validator(mode="after")
    def _ordered_thresholds(self):
        if self.escalate_after_minutes < self.reminder_after_minutes:
            raise ValueError("escalate_after_minutes must not be lower than reminder_after_minutes")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "CheckoutMonitoringSettings":
        return cls(
            expected_checkout_time=settings.checkout_expected_time,
            reminder_after_minutes=settings.checkout_reminder_after_min,
            escalate_after_minutes=settings.checkout_escalate_after_min,
            notify_employee=settings.checkout_notify_employee,
            notify_manager=settings.checkout_notify_manager,
            notify_roles=settings.checkout_notify_roles,
            work_days=settings.checkout_work_days,
        )


class MonitoringSettingsProvider:
    """Environment defaults overlaid with the runtime overrides in system_settings."""

    def __init__(self, store: SqlSettingsStore, settings: Settings):
        self._store = store
        self._defaults = CheckoutMonitoringSettings.from_settings(settings)

    def get(self) -> CheckoutMonitoringSettings:
        stored = self._store.get(SETTINGS_KEY)
        if not stored:
            return self._defaults
        merged = {**self._defaults.model_dump(), **stored}
        return CheckoutMonitoringSettings(**merged)

    def update(self, changes: Dict, updated_by: Optional[uuid.UUID] = None) -> CheckoutMonitoringSettings:
        current = self.get().model_dump()
        try:
            updated = CheckoutMonitoringSettings(**{**current, **changes})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid checkout monitoring settings: {e.errors()[0]['msg']}")
        self._store.put(SETTINGS_KEY, updated.model_dump(), updated_by=updated_by)
        logger.info("checkout_monitoring_settings_updated", changes=sorted(changes))
        return updated


class CheckoutMonitor:
    def __init__(
        self,
        attendance: AttendanceService,
        log: SqlMonitoringLog,
        notifier: Notifier,
        settings_provider: MonitoringSettingsProvider,
    ):
        self.attendance = attendance
        self.log = log
        self.notifier = notifier
        self.settings_provider = settings_provider

    def run(self) -> Dict:
        now = self.attendance.now()
        tz = self.attendance.tz
        today = local_day(now, tz)
        cfg = self.settings_provider.get()
        result = {
            "date": today.isoformat(),
            "processed": 0,
            "reminded": 0,
            "escalated": 0,
            "skipped": 0,
            "failed": 0,
        }

        weekday = WEEKDAY_NAMES[utc_to_local(now, tz).weekday()]
        if weekday not in cfg.work_days:
            logger.info("checkout_monitoring_skipped_day", date=today.isoformat(), weekday=weekday)
            result["skipped_day"] = True
            return result

        expected = parse_hhmm(cfg.expected_checkout_time)
        for record in self.attendance.repository.list_open(on_date=today):
            result["processed"] += 1
            try:
                late_by = minutes_past(now, today, expected, tz)
                outcome = self._classify(late_by, cfg)
                if outcome is None:
                    result["skipped"] += 1
                    continue
                # Claim first: a rerun that loses the claim sends nothing
                if not self.log.claim(record.employee_id, today, outcome, record.id, late_by):
                    result["skipped"] += 1
                    continue
                try:
                    self._notify(record.employee_id, today, outcome, late_by, cfg)
                except Exception:
                    # Undelivered: give the claim back so a rerun retries this record
                    self.log.release(record.employee_id, today, outcome)
                    raise
                result[outcome] += 1
            except Exception:
                result["failed"] += 1
                logger.exception("checkout_monitoring_record_failed", attendance_id=str(record.id))

        result["summary"] = self.log.refresh_summary(today)
        logger.info("checkout_monitoring_completed", **{k: v for k, v in result.items() if k != "summary"})
        return result

    @staticmethod
    def _classify(late_by: int, cfg: CheckoutMonitoringSettings) -> Optional[str]:
        if late_by < cfg.reminder_after_minutes:
            return None
        if late_by < cfg.escalate_after_minutes:
            return "reminded"
        return "escalated"

    def _notify(
        self, employee_id: uuid.UUID, day: date, outcome: str, late_by: int, cfg: CheckoutMonitoringSettings
    ) -> None:
        payload = {
            "employee_id": str(employee_id),
            "date": day.isoformat(),
            "expected_checkout_time": cfg.expected_checkout_time,
            "minutes_past_expected": late_by,
        }
        if outcome == "reminded":
            if cfg.notify_employee:
                self.notifier.send(employee_id, "checkout_reminder", payload)
            return

        if cfg.notify_manager:
            manager_id = self.attendance.directory.manager_of(employee_id)
            if manager_id:
                self.notifier.send(manager_id, "checkout_escalation", payload)
        for role in cfg.notify_roles:
            self.notifier.send(RoleGroup(Role.parse(role)), "checkout_escalation", payload)
