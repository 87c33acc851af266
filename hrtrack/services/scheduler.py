"""
Named job registry on top of APScheduler.

Each job is single-flight: a timer tick or a manual trigger that finds the job already
running is skipped rather than queued. Schedule and enable changes reschedule the live
APScheduler job, and are persisted when a job store is given.
"""
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

import pytz
import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..logging import job_context
from .errors import NotFoundError, ValidationError
from .time_rules import utc_now

logger = structlog.get_logger(__name__)

_DAILY_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def build_trigger(schedule: str, timezone_str: str) -> CronTrigger:
    """
    Accepts a 5-field crontab ("30 18 * * mon-fri") or a daily "HH:MM".

    Day-of-week numbers follow APScheduler (0 is Monday); names are safer.
    """
    tz = pytz.timezone(timezone_str)
    value = (schedule or "").strip()
    match = _DAILY_TIME.match(value)
    try:
        if match:
            return CronTrigger(hour=int(match.group(1)), minute=int(match.group(2)), timezone=tz)
        return CronTrigger.from_crontab(value, timezone=tz)
    except ValueError as e:
        raise ValidationError(f"Invalid schedule {schedule!r}: {e}")


@dataclass
class TriggerResult:
    name: str
    status: str  # completed|failed|started|already_running
    result: Optional[Dict] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"name": self.name, "status": self.status, "result": self.result, "error": self.error}


@dataclass
class _Job:
    name: str
    schedule: str
    handler: Callable[[], Optional[Dict]]
    enabled: bool = True
    description: str = ""
    lock: threading.Lock = field(default_factory=threading.Lock)
    last_run_at: Optional[datetime] = None
    last_status: str = "never_run"
    last_result: Optional[Dict] = None
    last_error: Optional[str] = None
    run_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0


def outcome_status(result: Optional[Dict]) -> str:
    if isinstance(result, dict) and (result.get("failed") or result.get("log_failed")):
        return "partial_failure"
    return "success"


class JobScheduler:
    def __init__(self, timezone_str: str, store=None, scheduler: Optional[BackgroundScheduler] = None):
        self.timezone = timezone_str
        self._store = store
        self._scheduler = scheduler or BackgroundScheduler(timezone=pytz.timezone(timezone_str))
        self._jobs: Dict[str, _Job] = {}
        self._registry_lock = threading.Lock()

    # Registry

    def register(
        self,
        name: str,
        schedule: str,
        handler: Callable[[], Optional[Dict]],
        enabled: bool = True,
        description: str = "",
    ) -> None:
        job = _Job(name=name, schedule=schedule, handler=handler, enabled=enabled, description=description)

        if self._store is not None:
            saved = self._store.load(name)
            if saved is None:
                self._store.save_config(name, schedule, enabled)
            else:
                job.schedule = saved["schedule"]
                job.enabled = saved["enabled"]
                job.last_run_at = saved["last_run_at"]
                job.last_status = saved["last_status"]
                job.last_error = saved["last_error"]

        build_trigger(job.schedule, self.timezone)
        with self._registry_lock:
            self._jobs[name] = job
        self._apply(job)
        logger.info("job_registered", job=name, schedule=job.schedule, enabled=job.enabled)

    def _get(self, name: str) -> _Job:
        job = self._jobs.get(name)
        if job is None:
            raise NotFoundError(f"Job '{name}' not found")
        return job

    def _apply(self, job: _Job) -> None:
        if self._scheduler.get_job(job.name) is not None:
            self._scheduler.remove_job(job.name)
        if not job.enabled:
            return
        self._scheduler.add_job(
            self._run_scheduled,
            build_trigger(job.schedule, self.timezone),
            args=[job.name],
            id=job.name,
            name=job.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

    # Lifecycle

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("scheduler_started", jobs=sorted(self._jobs))

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("scheduler_stopped")

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    # Execution

    def _run_scheduled(self, name: str) -> None:
        job = self._get(name)
        if not job.lock.acquire(blocking=False):
            job.skipped_count += 1
            logger.warning("job_skipped_already_running", job=name)
            return
        self._execute(job)

    def _execute(self, job: _Job) -> TriggerResult:
        """Run with ``job.lock`` already held; releases it."""
        started = utc_now()
        logger.info("job_started", job=job.name)
        try:
            with job_context(job.name):
                result = job.handler()
            job.last_status = outcome_status(result)
            job.last_result = result
            job.last_error = None
            outcome = TriggerResult(job.name, "completed", result=result)
        except Exception as e:
            job.failure_count += 1
            job.last_status = "failed"
            job.last_result = None
            job.last_error = str(e)
            outcome = TriggerResult(job.name, "failed", error=str(e))
            logger.exception("job_failed", job=job.name)
        finally:
            job.run_count += 1
            job.last_run_at = started
            try:
                if self._store is not None:
                    self._store.record_run(job.name, started, job.last_status, job.last_error)
            finally:
                job.lock.release()

        logger.info(
            "job_finished",
            job=job.name,
            status=job.last_status,
            duration_s=round((utc_now() - started).total_seconds(), 3),
        )
        return outcome

    def trigger(self, name: str, wait: bool = True) -> TriggerResult:
        """
        Run ``name`` now, unless it is already running.

        With ``wait=False`` the run happens on a background thread and the call
        returns ``started`` immediately.
        """
        job = self._get(name)
        if not job.lock.acquire(blocking=False):
            logger.info("job_trigger_refused_already_running", job=name)
            return TriggerResult(name, "already_running")
        if wait:
            return self._execute(job)
        threading.Thread(target=self._execute, args=(job,), name=f"job-{name}", daemon=True).start()
        return TriggerResult(name, "started")

    # Config

    def enable(self, name: str) -> Dict:
        return self.update_config(name, enabled=True)

    def disable(self, name: str) -> Dict:
        return self.update_config(name, enabled=False)

    def update_config(self, name: str, enabled: Optional[bool] = None, schedule: Optional[str] = None) -> Dict:
        job = self._get(name)
        if schedule is not None:
            build_trigger(schedule, self.timezone)
            job.schedule = schedule.strip()
        if enabled is not None:
            job.enabled = bool(enabled)
        self._apply(job)
        if self._store is not None:
            self._store.save_config(name, job.schedule, job.enabled)
        logger.info("job_config_updated", job=name, schedule=job.schedule, enabled=job.enabled)
        return self.status(name)

    # Introspection

    def status(self, name: str) -> Dict:
        job = self._get(name)
        scheduled = self._scheduler.get_job(name)
        next_run = getattr(scheduled, "next_run_time", None) if scheduled is not None else None
        return {
            "name": job.name,
            "description": job.description,
            "schedule": job.schedule,
            "enabled": job.enabled,
            "is_running": job.lock.locked(),
            "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
            "last_status": job.last_status,
            "last_result": job.last_result,
            "last_error": job.last_error,
            "next_run_at": next_run.isoformat() if next_run else None,
        }

    def list_jobs(self) -> List[Dict]:
        return [self.status(name) for name in sorted(self._jobs)]

    def statistics(self) -> Dict:
        jobs = list(self._jobs.values())
        by_status: Dict[str, int] = {}
        for job in jobs:
            by_status[job.last_status] = by_status.get(job.last_status, 0) + 1
        return {
            "total_jobs": len(jobs),
            "enabled_jobs": sum(1 for j in jobs if j.enabled),
            "running_jobs": sum(1 for j in jobs if j.lock.locked()),
            "total_runs": sum(j.run_count for j in jobs),
            "total_failures": sum(j.failure_count for j in jobs),
            "skipped_ticks": sum(j.skipped_count for j in jobs),
            "by_last_status": by_status,
            "scheduler_running": self.running,
        }
