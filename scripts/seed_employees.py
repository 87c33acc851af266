"""
Seed a local employee directory for development

Usage:
    python scripts/seed_employees.py [--dry-run]
"""
import sys
import os
import argparse
import uuid

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from hrtrack.db import Base, engine, SessionLocal
from hrtrack.models.models import Employee

# (full_name, email, role, manager index)
EMPLOYEES = [
    ("Ada Okafor", "ada.okafor@example.com", "superadmin", None),
    ("Tunde Bello", "tunde.bello@example.com", "admin", 0),
    ("Ngozi Eze", "ngozi.eze@example.com", "hr", 1),
    ("Kemi Adeyemi", "kemi.adeyemi@example.com", "teamlead", 1),
    ("Segun Lawal", "segun.lawal@example.com", "employee", 3),
    ("Amaka Obi", "amaka.obi@example.com", "employee", 3),
]


def seed_employees(dry_run: bool = False):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = []
        for full_name, email, role, manager_idx in EMPLOYEES:
            existing = db.query(Employee).filter(Employee.email == email).first()
            if existing:
                print(f"[SKIP] {email} already exists")
                created.append(existing)
                continue
            manager = created[manager_idx] if manager_idx is not None else None
            employee = Employee(
                user_id=uuid.uuid4(),
                full_name=full_name,
                email=email,
                role=role,
                manager_id=manager.id if manager else None,
            )
            db.add(employee)
            db.flush()
            created.append(employee)
            print(f"[ADD] {full_name} ({role}) user_id={employee.user_id}")

        if dry_run:
            db.rollback()
            print("Dry run: nothing committed")
        else:
            db.commit()
            print(f"Done: {len(created)} employees in directory")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed local employees")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be created")
    args = parser.parse_args()
    seed_employees(dry_run=args.dry_run)
