from datetime import date

from sqlalchemy import select

from hrtrack.models.models import Attendance, CheckoutMonitoringLog
from hrtrack.services.permissions import Role
from tests.helpers import OFFICE, lagos


def _snapshot(session_factory):
    with session_factory() as db:
        rows = db.execute(select(Attendance).order_by(Attendance.employee_id)).scalars().all()
        return [
            (r.id, r.status, r.check_out_time, r.total_hours, r.auto_closed, r.closed_by)
            for r in rows
        ]


def test_forgotten_check_out_is_closed_at_midnight(container, service, people, clock):
    clock.set(lagos(2026, 10, 19, 9, 0))
    opened = service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE).record

    clock.set(lagos(2026, 10, 20, 0, 5))
    result = container.auto_clockout.run()

    assert result == {
        "date": "2026-10-20", "processed": 1, "succeeded": 1, "failed": 0, "skipped": 0, "log_failed": 0,
    }
    closed = service.repository.get(opened.id)
    assert closed.status == "checked_out"
    assert closed.auto_closed is True
    assert closed.closed_by == "system"
    assert closed.check_out_time == lagos(2026, 10, 20, 0, 0)
    assert closed.total_hours == 15.0


def test_grace_minutes_move_the_cutoff(container, service, people, clock):
    clock.set(lagos(2026, 10, 19, 9, 0))
    opened = service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE).record

    container.settings.auto_clockout_grace_minutes = 30
    clock.set(lagos(2026, 10, 20, 1, 0))
    container.auto_clockout.run()

    assert service.repository.get(opened.id).check_out_time == lagos(2026, 10, 20, 0, 30)


def test_todays_open_sessions_are_left_alone(container, service, people, clock):
    clock.set(lagos(2026, 10, 20, 9, 0))
    service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE)

    clock.set(lagos(2026, 10, 20, 23, 0))
    result = container.auto_clockout.run()
    assert result["processed"] == 0
    assert service.current_status(people.employee.user_id).status == "checked_in"


def test_rerun_is_a_no_op(container, service, people, clock, session_factory):
    for person in (people.employee, people.other, people.teamlead):
        clock.set(lagos(2026, 10, 19, 8, 30))
        service.check_in(person.user_id, Role.parse(person.role), OFFICE)
    clock.set(lagos(2026, 10, 19, 17, 0))
    service.check_out(people.teamlead.user_id, Role.TEAMLEAD, OFFICE)

    clock.set(lagos(2026, 10, 20, 0, 1))
    first = container.auto_clockout.run()
    after_first = _snapshot(session_factory)

    second = container.auto_clockout.run()
    after_second = _snapshot(session_factory)

    assert (first["processed"], first["succeeded"]) == (2, 2)
    assert second["processed"] == 0
    assert after_first == after_second

    summary = container.monitoring_log.get_summary(date(2026, 10, 19))
    assert summary["auto_clocked_out"] == 2


def test_one_bad_record_does_not_abort_the_pass(container, service, people, clock, monkeypatch):
    clock.set(lagos(2026, 10, 19, 9, 0))
    bad = service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE).record
    service.check_in(people.other.user_id, Role.EMPLOYEE, OFFICE)

    real_auto_close = service.auto_close

    def flaky(record, cutoff=None):
        if record.id == bad.id:
            raise RuntimeError("database went away")
        return real_auto_close(record, cutoff)

    monkeypatch.setattr(service, "auto_close", flaky)
    clock.set(lagos(2026, 10, 20, 0, 5))

    outcome = container.scheduler.trigger("auto_clockout")
    assert outcome.status == "completed"
    assert outcome.result["processed"] == 2
    assert outcome.result["succeeded"] == 1
    assert outcome.result["failed"] == 1
    assert container.scheduler.status("auto_clockout")["last_status"] == "partial_failure"

    # The failed record is picked up again once the fault is gone
    monkeypatch.setattr(service, "auto_close", real_auto_close)
    retry = container.auto_clockout.run()
    assert (retry["processed"], retry["succeeded"]) == (1, 1)


def test_record_closed_concurrently_is_skipped(container, service, people, clock, monkeypatch, session_factory):
    clock.set(lagos(2026, 10, 19, 9, 0))
    service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE)

    stale = service.repository.list_open(before=date(2026, 10, 20))
    clock.set(lagos(2026, 10, 20, 0, 5))
    container.auto_clockout.run()

    # Replay the scan result from before the first run
    monkeypatch.setattr(service.repository, "list_open", lambda **kw: stale)
    result = container.auto_clockout.run()
    assert (result["processed"], result["skipped"], result["succeeded"]) == (1, 1, 0)

    with session_factory() as db:
        logs = db.execute(select(CheckoutMonitoringLog)).scalars().all()
    assert [log.outcome for log in logs] == ["auto_clocked_out"]


def test_saturday_session_is_closed_on_sunday(container, service, people, clock):
    clock.set(lagos(2026, 10, 24, 9, 0))
    service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE)

    clock.set(lagos(2026, 10, 25, 0, 1))
    result = container.auto_clockout.run()
    assert result["succeeded"] == 1
    assert result["date"] == "2026-10-25"


def test_log_write_failure_still_reports_the_close(container, service, people, clock, monkeypatch):
    clock.set(lagos(2026, 10, 19, 9, 0))
    opened = service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE).record

    def broken_claim(*args, **kwargs):
        raise RuntimeError("monitoring log unavailable")

    monkeypatch.setattr(container.monitoring_log, "claim", broken_claim)
    clock.set(lagos(2026, 10, 20, 0, 5))

    outcome = container.scheduler.trigger("auto_clockout")
    assert outcome.status == "completed"
    assert (outcome.result["succeeded"], outcome.result["failed"], outcome.result["log_failed"]) == (1, 0, 1)
    assert container.scheduler.status("auto_clockout")["last_status"] == "partial_failure"

    closed = service.repository.get(opened.id)
    assert (closed.status, closed.auto_closed) == ("checked_out", True)
    # The touched day is still recounted
    assert container.monitoring_log.get_summary(date(2026, 10, 19))["updated_at"] is not None
