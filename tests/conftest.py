import os
import uuid
from dataclasses import dataclass

# Module-level objects in hrtrack read the environment on import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest

from hrtrack.config import Settings
from hrtrack.container import build_container
from hrtrack.db import Base, build_engine, build_session_factory
from hrtrack.models.models import Employee
from tests.helpers import OFFICE, FixedClock, lagos


@dataclass
class People:
    superadmin: Employee
    admin: Employee
    hr: Employee
    teamlead: Employee
    employee: Employee
    other: Employee


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/hrtrack-test.db",
        jwt_secret="test-secret",
        cron_secret="cron-secret",
        scheduler_enabled=False,
        rate_limit="1000/minute",
        office_latitude=OFFICE.latitude,
        office_longitude=OFFICE.longitude,
    )


@pytest.fixture
def session_factory(settings):
    engine = build_engine(settings.database_url, busy_timeout=30)
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def people(session_factory) -> People:
    def make(name, role, manager=None):
        return Employee(
            id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            full_name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            role=role,
            manager_id=manager.id if manager else None,
            is_active=True,
        )

    superadmin = make("Ada Okafor", "superadmin")
    admin = make("Tunde Bello", "admin")
    hr = make("Ngozi Eze", "hr")
    teamlead = make("Kemi Adeyemi", "teamlead")
    employee = make("Segun Lawal", "employee", manager=teamlead)
    other = make("Amaka Obi", "employee", manager=teamlead)

    with session_factory() as db, db.begin():
        db.add_all([superadmin, admin, hr, teamlead, employee, other])
    return People(superadmin, admin, hr, teamlead, employee, other)


@pytest.fixture
def clock():
    # Tuesday 09:00 in Lagos
    return FixedClock(lagos(2026, 10, 20, 9, 0))


@pytest.fixture
def container(settings, session_factory, clock):
    c = build_container(settings=settings, session_factory=session_factory, clock=clock)
    yield c
    c.scheduler.shutdown()


@pytest.fixture
def service(container):
    return container.attendance_service
