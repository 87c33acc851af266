from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import sessionmaker

from ..models.models import ScheduledJob
from ..services.time_rules import ensure_utc, utc_now


class SqlJobStore:
    """Persists scheduled job config and last-run state in scheduled_jobs."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def load(self, name: str) -> Optional[Dict]:
        with self._session_factory() as db:
            row = db.get(ScheduledJob, name)
            if row is None:
                return None
            return {
                "schedule": row.schedule,
                "enabled": bool(row.enabled),
                "last_run_at": ensure_utc(row.last_run_at) if row.last_run_at else None,
                "last_status": row.last_status or "never_run",
                "last_error": row.last_error,
            }

    def save_config(self, name: str, schedule: str, enabled: bool) -> None:
        with self._session_factory() as db, db.begin():
            row = db.get(ScheduledJob, name)
            if row is None:
                row = ScheduledJob(name=name, last_status="never_run")
                db.add(row)
            row.schedule = schedule
            row.enabled = enabled
            row.updated_at = utc_now()

    def record_run(self, name: str, last_run_at: datetime, last_status: str, last_error: Optional[str]) -> None:
        with self._session_factory() as db, db.begin():
            row = db.get(ScheduledJob, name)
            if row is None:
                return
            row.last_run_at = last_run_at
            row.last_status = last_status
            row.last_error = last_error
            row.updated_at = utc_now()
