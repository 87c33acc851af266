from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .config import Settings
from .repositories.attendance import SqlAttendanceRepository
from .repositories.jobs import SqlJobStore
from .repositories.monitoring import SqlMonitoringLog, SqlSettingsStore
from .services.attendance import AttendanceService, Clock
from .services.auto_clockout import AutoClockoutJob
from .services.checkout_monitoring import CheckoutMonitor, MonitoringSettingsProvider
from .services.directory import SqlEmployeeDirectory
from .services.geofence import GeofencePolicy
from .services.notifications import OutboxNotifier
from .services.permissions import RoleTableAuthorizer
from .services.scheduler import JobScheduler
from .services.time_rules import utc_now

CHECKOUT_MONITORING_JOB = "checkout_monitoring"
AUTO_CLOCKOUT_JOB = "auto_clockout"


@dataclass(frozen=True)
class Container:
    settings: Settings
    session_factory: sessionmaker

    attendance_repo: SqlAttendanceRepository
    monitoring_log: SqlMonitoringLog
    settings_store: SqlSettingsStore
    job_store: SqlJobStore

    directory: SqlEmployeeDirectory
    authz: RoleTableAuthorizer
    notifier: OutboxNotifier
    policy: GeofencePolicy

    attendance_service: AttendanceService
    monitoring_settings: MonitoringSettingsProvider
    checkout_monitor: CheckoutMonitor
    auto_clockout: AutoClockoutJob
    scheduler: JobScheduler


def build_container(*, settings: Settings, session_factory: sessionmaker, clock: Optional[Clock] = None) -> Container:
    attendance_repo = SqlAttendanceRepository(session_factory, integrity_secret=settings.jwt_secret)
    monitoring_log = SqlMonitoringLog(session_factory)
    settings_store = SqlSettingsStore(session_factory)
    job_store = SqlJobStore(session_factory)

    directory = SqlEmployeeDirectory(session_factory)
    authz = RoleTableAuthorizer()
    notifier = OutboxNotifier(session_factory, directory, settings)
    policy = GeofencePolicy.from_settings(settings)

    attendance_service = AttendanceService(
        attendance_repo,
        directory,
        authz,
        policy,
        settings,
        clock=clock or utc_now,
    )
    monitoring_settings = MonitoringSettingsProvider(settings_store, settings)
    checkout_monitor = CheckoutMonitor(attendance_service, monitoring_log, notifier, monitoring_settings)
    auto_clockout = AutoClockoutJob(attendance_service, monitoring_log)

    scheduler = JobScheduler(settings.attendance_tz, store=job_store)
    scheduler.register(
        CHECKOUT_MONITORING_JOB,
        settings.checkout_monitor_schedule,
        checkout_monitor.run,
        description="Remind and escalate employees still checked in after the expected checkout time",
    )
    scheduler.register(
        AUTO_CLOCKOUT_JOB,
        settings.auto_clockout_schedule,
        auto_clockout.run,
        description="Close sessions left open on previous days at the daily cutoff",
    )

    return Container(
        settings=settings,
        session_factory=session_factory,
        attendance_repo=attendance_repo,
        monitoring_log=monitoring_log,
        settings_store=settings_store,
        job_store=job_store,
        directory=directory,
        authz=authz,
        notifier=notifier,
        policy=policy,
        attendance_service=attendance_service,
        monitoring_settings=monitoring_settings,
        checkout_monitor=checkout_monitor,
        auto_clockout=auto_clockout,
        scheduler=scheduler,
    )
