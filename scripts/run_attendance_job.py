"""
Run one attendance job once, outside the scheduler

Usage:
    python scripts/run_attendance_job.py auto_clockout
    python scripts/run_attendance_job.py checkout_monitoring
    python scripts/run_attendance_job.py --list
"""
import sys
import os
import argparse
import json

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from hrtrack.config import settings
from hrtrack.container import build_container
from hrtrack.db import Base, engine, SessionLocal
from hrtrack.logging import setup_logging


def main():
    parser = argparse.ArgumentParser(description="Run an attendance job once")
    parser.add_argument("job", nargs="?", help="Job name (auto_clockout, checkout_monitoring)")
    parser.add_argument("--list", action="store_true", help="List registered jobs and exit")
    args = parser.parse_args()

    setup_logging()
    Base.metadata.create_all(bind=engine)
    container = build_container(settings=settings, session_factory=SessionLocal)

    if args.list or not args.job:
        for job in container.scheduler.list_jobs():
            print(f"{job['name']:<22} {job['schedule']:<18} enabled={job['enabled']} last={job['last_status']}")
        return 0

    outcome = container.scheduler.trigger(args.job)
    print(json.dumps(outcome.to_dict(), indent=2, default=str))
    return 0 if outcome.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
