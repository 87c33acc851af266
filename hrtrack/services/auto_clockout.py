"""
Auto clock-out.
Closes sessions left open on previous days at the day's cutoff instant.
"""
from typing import Dict, Set
from datetime import date

import structlog

from ..repositories.monitoring import SqlMonitoringLog
from .attendance import AttendanceService
from .time_rules import auto_clockout_cutoff, minutes_past, parse_hhmm

logger = structlog.get_logger(__name__)


class AutoClockoutJob:
    def __init__(self, attendance: AttendanceService, log: SqlMonitoringLog):
        self.attendance = attendance
        self.log = log

    def run(self) -> Dict:
        today = self.attendance.today()
        tz = self.attendance.tz
        grace = self.attendance.settings.auto_clockout_grace_minutes
        expected = parse_hhmm(self.attendance.settings.checkout_expected_time)

        result = {
            "date": today.isoformat(),
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "log_failed": 0,
        }
        touched: Set[date] = set()

        for record in self.attendance.repository.list_open(before=today):
            result["processed"] += 1
            cutoff = auto_clockout_cutoff(record.date, tz, grace)
            try:
                closed = self.attendance.auto_close(record, cutoff)
            except Exception:
                result["failed"] += 1
                logger.exception("auto_clockout_record_failed", attendance_id=str(record.id))
                continue
            if closed is None:
                # Someone else closed it between the scan and our write
                result["skipped"] += 1
                continue

            # The record is closed from here on; bookkeeping failures are reported apart
            result["succeeded"] += 1
            touched.add(record.date)
            logger.info(
                "attendance_auto_clocked_out",
                attendance_id=str(record.id),
                employee_id=str(record.employee_id),
                date=record.date.isoformat(),
                total_hours=closed.total_hours,
            )
            try:
                self.log.claim(
                    record.employee_id,
                    record.date,
                    "auto_clocked_out",
                    record.id,
                    minutes_past(cutoff, record.date, expected, tz),
                )
            except Exception:
                result["log_failed"] += 1
                logger.exception("auto_clockout_log_failed", attendance_id=str(record.id))

        for day in sorted(touched):
            try:
                self.log.refresh_summary(day)
            except Exception:
                result["log_failed"] += 1
                logger.exception("auto_clockout_summary_failed", date=day.isoformat())

        logger.info("auto_clockout_completed", **result)
        return result
