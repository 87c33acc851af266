from __future__ import annotations

import uuid
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..models.models import CheckoutMonitoringLog, DailyCheckoutSummary, SystemSetting
from ..services.time_rules import ensure_utc, utc_now

OUTCOMES = ("reminded", "escalated", "auto_clocked_out")


def _log_dict(row: CheckoutMonitoringLog) -> Dict:
    return {
        "id": str(row.id),
        "employee_id": str(row.employee_id),
        "date": row.date.isoformat(),
        "attendance_id": str(row.attendance_id) if row.attendance_id else None,
        "outcome": row.outcome,
        "minutes_past_expected": row.minutes_past_expected,
        "created_at": ensure_utc(row.created_at).isoformat() if row.created_at else None,
    }


def _summary_dict(day: date, row: Optional[DailyCheckoutSummary]) -> Dict:
    return {
        "date": day.isoformat(),
        "reminded": row.reminded_count if row else 0,
        "escalated": row.escalated_count if row else 0,
        "auto_clocked_out": row.auto_clocked_out_count if row else 0,
        "updated_at": ensure_utc(row.updated_at).isoformat() if row and row.updated_at else None,
    }


class SqlMonitoringLog:
    """Checkout monitoring log and per-day summaries."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def claim(
        self,
        employee_id: uuid.UUID,
        day: date,
        outcome: str,
        attendance_id: Optional[uuid.UUID] = None,
        minutes_past_expected: Optional[int] = None,
    ) -> bool:
        """Insert the (employee, day, outcome) row; False when it was already taken."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")
        try:
            with self._session_factory() as db, db.begin():
                db.add(CheckoutMonitoringLog(
                    employee_id=employee_id,
                    date=day,
                    attendance_id=attendance_id,
                    outcome=outcome,
                    minutes_past_expected=minutes_past_expected,
                ))
        except IntegrityError:
            return False
        return True

    def release(self, employee_id: uuid.UUID, day: date, outcome: str) -> None:
        """Drop a claim whose follow-up failed, so the next run can take it again."""
        with self._session_factory() as db, db.begin():
            db.query(CheckoutMonitoringLog).filter(
                CheckoutMonitoringLog.employee_id == employee_id,
                CheckoutMonitoringLog.date == day,
                CheckoutMonitoringLog.outcome == outcome,
            ).delete(synchronize_session=False)

    def refresh_summary(self, day: date) -> Dict:
        """Recount the day's log rows into its summary row."""
        try:
            return self._recount(day)
        except IntegrityError:
            # Another writer created the summary row first; recount into it
            return self._recount(day)

    def _recount(self, day: date) -> Dict:
        with self._session_factory() as db, db.begin():
            counts = dict(
                db.query(CheckoutMonitoringLog.outcome, func.count(CheckoutMonitoringLog.id))
                .filter(CheckoutMonitoringLog.date == day)
                .group_by(CheckoutMonitoringLog.outcome)
                .all()
            )
            row = db.get(DailyCheckoutSummary, day)
            if row is None:
                row = DailyCheckoutSummary(date=day)
                db.add(row)
            row.reminded_count = counts.get("reminded", 0)
            row.escalated_count = counts.get("escalated", 0)
            row.auto_clocked_out_count = counts.get("auto_clocked_out", 0)
            row.updated_at = utc_now()
            db.flush()
            return _summary_dict(day, row)

    def get_summary(self, day: date) -> Dict:
        with self._session_factory() as db:
            return _summary_dict(day, db.get(DailyCheckoutSummary, day))

    def list_logs(
        self,
        *,
        day: Optional[date] = None,
        employee_id: Optional[uuid.UUID] = None,
        outcome: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict], int]:
        limit = min(max(1, limit), 500)
        offset = max(0, offset)
        with self._session_factory() as db:
            query = db.query(CheckoutMonitoringLog)
            if day is not None:
                query = query.filter(CheckoutMonitoringLog.date == day)
            if employee_id is not None:
                query = query.filter(CheckoutMonitoringLog.employee_id == employee_id)
            if outcome:
                query = query.filter(CheckoutMonitoringLog.outcome == outcome)
            total = query.with_entities(func.count(CheckoutMonitoringLog.id)).scalar() or 0
            rows = (
                query.order_by(CheckoutMonitoringLog.date.desc(), CheckoutMonitoringLog.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_log_dict(r) for r in rows], total

    def statistics(self, start: Optional[date] = None, end: Optional[date] = None) -> Dict:
        with self._session_factory() as db:
            query = db.query(DailyCheckoutSummary)
            if start is not None:
                query = query.filter(DailyCheckoutSummary.date >= start)
            if end is not None:
                query = query.filter(DailyCheckoutSummary.date <= end)
            rows = query.order_by(DailyCheckoutSummary.date.asc()).all()
            days = [_summary_dict(r.date, r) for r in rows]

        totals = {outcome: sum(d[outcome] for d in days) for outcome in OUTCOMES}
        return {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
            "days": len(days),
            "totals": totals,
            "daily": days,
        }


class SqlSettingsStore:
    """Key -> JSON value rows in system_settings."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[Dict]:
        with self._session_factory() as db:
            row = db.get(SystemSetting, key)
            return dict(row.value) if row and row.value else None

    def put(self, key: str, value: Dict, updated_by: Optional[uuid.UUID] = None) -> None:
        with self._session_factory() as db, db.begin():
            row = db.get(SystemSetting, key)
            if row is None:
                row = SystemSetting(key=key)
                db.add(row)
            row.value = value
            row.updated_by = updated_by
            row.updated_at = utc_now()
