import threading
import time

import pytest

from hrtrack.repositories.jobs import SqlJobStore
from hrtrack.services.errors import NotFoundError, ValidationError
from hrtrack.services.scheduler import JobScheduler, build_trigger, outcome_status


@pytest.fixture
def scheduler():
    s = JobScheduler("Africa/Lagos")
    yield s
    s.shutdown()


def test_build_trigger_accepts_crontab_and_daily_time():
    assert "mon-fri" in str(build_trigger("30 18 * * mon-fri", "Africa/Lagos"))
    daily = build_trigger("00:05", "Africa/Lagos")
    assert "hour='0'" in str(daily) and "minute='5'" in str(daily)

    for bad in ("", "25:00", "every day", "* * *"):
        with pytest.raises(ValidationError):
            build_trigger(bad, "Africa/Lagos")


def test_trigger_is_single_flight(scheduler):
    release = threading.Event()
    entered = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        entered.set()
        release.wait(10)
        return {"processed": 0}

    scheduler.register("slow", "00:05", slow)

    assert scheduler.trigger("slow", wait=False).status == "started"
    assert entered.wait(10)
    assert scheduler.status("slow")["is_running"] is True
    assert scheduler.trigger("slow").status == "already_running"

    # A timer tick that lands mid-run is dropped, not queued
    scheduler._run_scheduled("slow")
    assert scheduler.statistics()["skipped_ticks"] == 1

    release.set()
    for _ in range(100):
        if not scheduler.status("slow")["is_running"]:
            break
        time.sleep(0.05)

    assert calls == [1]
    status = scheduler.status("slow")
    assert status["last_status"] == "success"
    assert status["last_run_at"] is not None
    assert scheduler.trigger("slow").status == "completed"


def test_failures_are_recorded_and_the_lock_released(scheduler):
    def broken():
        raise RuntimeError("smtp timeout")

    scheduler.register("broken", "00:05", broken)
    outcome = scheduler.trigger("broken")
    assert outcome.status == "failed"
    assert outcome.error == "smtp timeout"

    status = scheduler.status("broken")
    assert status["last_status"] == "failed"
    assert status["last_error"] == "smtp timeout"
    assert status["is_running"] is False
    assert scheduler.trigger("broken").status == "failed"
    assert scheduler.statistics()["total_failures"] == 2


def test_partial_failure_status():
    assert outcome_status({"processed": 3, "failed": 1}) == "partial_failure"
    assert outcome_status({"processed": 3, "failed": 0}) == "success"
    assert outcome_status({"processed": 3, "failed": 0, "log_failed": 1}) == "partial_failure"
    assert outcome_status(None) == "success"


def test_unknown_job_and_bad_schedule(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.trigger("missing")
    with pytest.raises(NotFoundError):
        scheduler.status("missing")
    with pytest.raises(ValidationError):
        scheduler.register("bad", "not a schedule", lambda: None)

    scheduler.register("job", "00:05", lambda: None)
    with pytest.raises(ValidationError):
        scheduler.update_config("job", schedule="99:99")
    assert scheduler.status("job")["schedule"] == "00:05"


def test_disable_and_enable(scheduler):
    scheduler.register("job", "00:05", lambda: None)
    scheduler.start()
    assert scheduler.status("job")["next_run_at"] is not None

    disabled = scheduler.disable("job")
    assert disabled["enabled"] is False
    assert disabled["next_run_at"] is None
    assert scheduler.statistics()["enabled_jobs"] == 0

    # Manual trigger still runs a disabled job
    assert scheduler.trigger("job").status == "completed"

    enabled = scheduler.enable("job")
    assert enabled["enabled"] is True
    assert enabled["next_run_at"] is not None


def test_config_and_last_run_survive_restart(session_factory):
    store = SqlJobStore(session_factory)
    first = JobScheduler("Africa/Lagos", store=store)
    first.register("nightly", "00:05", lambda: {"failed": 2})
    first.update_config("nightly", schedule="30 1 * * *", enabled=False)
    first.trigger("nightly")

    second = JobScheduler("Africa/Lagos", store=store)
    # Registration defaults do not override what was saved
    second.register("nightly", "00:05", lambda: None)
    status = second.status("nightly")
    assert status["schedule"] == "30 1 * * *"
    assert status["enabled"] is False
    assert status["last_status"] == "partial_failure"
    assert status["last_run_at"] is not None


def test_statistics(scheduler):
    scheduler.register("a", "00:05", lambda: {"failed": 0})
    scheduler.register("b", "00:10", lambda: None, enabled=False)
    scheduler.trigger("a")

    stats = scheduler.statistics()
    assert stats["total_jobs"] == 2
    assert stats["enabled_jobs"] == 1
    assert stats["total_runs"] == 1
    assert stats["by_last_status"] == {"success": 1, "never_run": 1}
    assert stats["scheduler_running"] is False
    assert [j["name"] for j in scheduler.list_jobs()] == ["a", "b"]
