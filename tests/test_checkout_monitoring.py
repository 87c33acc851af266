from datetime import date

import pytest
from sqlalchemy import select

from hrtrack.models.models import Notification
from hrtrack.services.checkout_monitoring import CheckoutMonitor, CheckoutMonitoringSettings
from hrtrack.services.errors import ValidationError
from hrtrack.services.notifications import RoleGroup
from hrtrack.services.permissions import Role
from tests.helpers import OFFICE, RecordingNotifier, lagos


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor(container, notifier):
    return CheckoutMonitor(
        container.attendance_service, container.monitoring_log, notifier, container.monitoring_settings
    )


def _open_sessions(service, people, clock, *who):
    clock.set(lagos(2026, 10, 20, 8, 30))
    for person in who:
        service.check_in(person.user_id, Role.parse(person.role), OFFICE)


def test_reminds_employees_still_checked_in(monitor, service, people, clock, notifier):
    _open_sessions(service, people, clock, people.employee, people.other)
    clock.set(lagos(2026, 10, 20, 17, 0))
    service.check_out(people.other.user_id, Role.EMPLOYEE, OFFICE)

    clock.set(lagos(2026, 10, 20, 18, 30))
    result = monitor.run()

    assert result["processed"] == 1
    assert result["reminded"] == 1
    assert result["escalated"] == 0
    assert result["summary"]["reminded"] == 1
    assert notifier.sent == [
        (
            people.employee.id,
            "checkout_reminder",
            {
                "employee_id": str(people.employee.id),
                "date": "2026-10-20",
                "expected_checkout_time": "18:00",
                "minutes_past_expected": 30,
            },
        )
    ]


def test_rerun_does_not_notify_twice(monitor, service, people, clock, notifier):
    _open_sessions(service, people, clock, people.employee)
    clock.set(lagos(2026, 10, 20, 18, 30))

    monitor.run()
    second = monitor.run()

    assert second["reminded"] == 0
    assert second["skipped"] == 1
    assert len(notifier.sent) == 1
    assert second["summary"]["reminded"] == 1


def test_escalates_to_manager_and_hr(monitor, service, people, clock, notifier):
    _open_sessions(service, people, clock, people.employee)
    clock.set(lagos(2026, 10, 20, 18, 30))
    monitor.run()

    clock.set(lagos(2026, 10, 20, 20, 0))
    result = monitor.run()

    assert result["escalated"] == 1
    recipients = [(r, key) for r, key, _ in notifier.sent]
    assert recipients == [
        (people.employee.id, "checkout_reminder"),
        (people.teamlead.id, "checkout_escalation"),
        (RoleGroup(Role.HR), "checkout_escalation"),
    ]

    summary = result["summary"]
    assert (summary["reminded"], summary["escalated"]) == (1, 1)


def test_before_expected_checkout_nothing_happens(monitor, service, people, clock, notifier):
    _open_sessions(service, people, clock, people.employee)
    clock.set(lagos(2026, 10, 20, 17, 45))
    result = monitor.run()
    assert result["skipped"] == 1
    assert notifier.sent == []


def test_non_work_day_is_skipped(monitor, service, people, clock, notifier):
    clock.set(lagos(2026, 10, 24, 9, 0))
    service.check_in(people.employee.user_id, Role.EMPLOYEE, OFFICE)

    clock.set(lagos(2026, 10, 24, 18, 30))
    result = monitor.run()
    assert result["skipped_day"] is True
    assert result["processed"] == 0
    assert notifier.sent == []


def test_runtime_settings_change_thresholds(container, monitor, service, people, clock, notifier):
    container.monitoring_settings.update({"escalate_after_minutes": 15, "notify_roles": ["HR", "admin"]})
    _open_sessions(service, people, clock, people.employee)

    clock.set(lagos(2026, 10, 20, 18, 30))
    monitor.run()

    keys = [(r, key) for r, key, _ in notifier.sent]
    assert (RoleGroup(Role.ADMIN), "checkout_escalation") in keys
    assert (people.employee.id, "checkout_reminder") not in keys


def test_one_failing_record_is_isolated(monitor, service, people, clock, notifier, monkeypatch):
    _open_sessions(service, people, clock, people.employee, people.other)
    clock.set(lagos(2026, 10, 20, 18, 30))

    real_send = notifier.send

    def send(recipient, template_key, payload=None):
        if recipient == people.employee.id:
            raise RuntimeError("push gateway down")
        return real_send(recipient, template_key, payload)

    monkeypatch.setattr(notifier, "send", send)
    result = monitor.run()
    assert (result["reminded"], result["failed"]) == (1, 1)


def test_outbox_notifier_fans_out_role_groups(container, service, people, clock, session_factory):
    _open_sessions(service, people, clock, people.employee)
    clock.set(lagos(2026, 10, 20, 20, 30))
    container.checkout_monitor.run()

    with session_factory() as db:
        rows = db.execute(select(Notification)).scalars().all()
    # teamlead and the single HR employee, on push and email
    assert sorted({r.employee_id for r in rows}) == sorted({people.teamlead.id, people.hr.id})
    assert len(rows) == 4
    assert {r.template_key for r in rows} == {"checkout_escalation"}


def test_statistics_and_logs(container, monitor, service, people, clock):
    _open_sessions(service, people, clock, people.employee, people.other)
    clock.set(lagos(2026, 10, 20, 18, 30))
    monitor.run()

    items, total = container.monitoring_log.list_logs(day=date(2026, 10, 20))
    assert total == 2
    assert {i["outcome"] for i in items} == {"reminded"}

    stats = container.monitoring_log.statistics(date(2026, 10, 1), date(2026, 10, 31))
    assert stats["totals"] == {"reminded": 2, "escalated": 0, "auto_clocked_out": 0}
    assert stats["days"] == 1


def test_settings_validation():
    with pytest.raises(ValueError):
        CheckoutMonitoringSettings(reminder_after_minutes=60, escalate_after_minutes=30)
    with pytest.raises(ValueError):
        CheckoutMonitoringSettings(work_days=["funday"])
    with pytest.raises(ValueError):
        CheckoutMonitoringSettings(expected_checkout_time="6pm")
    assert CheckoutMonitoringSettings(notify_roles=["Manager"]).notify_roles == ["teamlead"]


def test_settings_update_rejects_invalid_values(container):
    with pytest.raises(ValidationError):
        container.monitoring_settings.update({"notify_roles": ["janitor"]})
    assert container.monitoring_settings.get().notify_roles == ["hr"]

    updated = container.monitoring_settings.update({"expected_checkout_time": "17:30"})
    assert updated.expected_checkout_time == "17:30"
    assert container.monitoring_settings.get().expected_checkout_time == "17:30"


def test_failed_delivery_is_retried_on_the_next_run(monitor, service, people, clock, notifier, monkeypatch):
    _open_sessions(service, people, clock, people.employee)
    clock.set(lagos(2026, 10, 20, 18, 30))

    real_send = notifier.send

    def down(recipient, template_key, payload=None):
        raise RuntimeError("push gateway down")

    monkeypatch.setattr(notifier, "send", down)
    first = monitor.run()
    assert (first["reminded"], first["failed"]) == (0, 1)
    assert first["summary"]["reminded"] == 0

    monkeypatch.setattr(notifier, "send", real_send)
    second = monitor.run()
    assert (second["reminded"], second["failed"]) == (1, 0)
    assert second["summary"]["reminded"] == 1

    third = monitor.run()
    assert third["skipped"] == 1
    assert [key for _, key, _ in notifier.sent] == ["checkout_reminder"]
