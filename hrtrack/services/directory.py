from __future__ import annotations

import uuid
from typing import Dict, List, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from ..models.models import Employee
from .errors import NotFoundError
from .permissions import Role


def parse_uuid(value, what: str = "id") -> uuid.UUID:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise NotFoundError(f"Unknown {what}: {value!r}")


class EmployeeDirectory(Protocol):
    def resolve(self, user_id) -> uuid.UUID:
        """Map an authenticated user id to an employee id; NotFoundError if unknown."""
        ...

    def exists(self, employee_id) -> bool:
        ...

    def manager_of(self, employee_id) -> Optional[uuid.UUID]:
        ...

    def ids_with_role(self, role: Role) -> List[uuid.UUID]:
        ...

    def names_for(self, employee_ids: List[uuid.UUID]) -> Dict[uuid.UUID, str]:
        """Full names keyed by employee id; unknown ids are left out."""
        ...


class SqlEmployeeDirectory:
    """Reads the employees projection maintained by the HR module."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def resolve(self, user_id) -> uuid.UUID:
        uid = parse_uuid(user_id, "user")
        with self._session_factory() as db:
            row = db.query(Employee.id).filter(Employee.user_id == uid, Employee.is_active.is_(True)).first()
        if row is None:
            raise NotFoundError("Employee not found")
        return row[0]

    def exists(self, employee_id) -> bool:
        try:
            eid = parse_uuid(employee_id, "employee")
        except NotFoundError:
            return False
        with self._session_factory() as db:
            return db.query(Employee.id).filter(Employee.id == eid, Employee.is_active.is_(True)).first() is not None

    def manager_of(self, employee_id) -> Optional[uuid.UUID]:
        eid = parse_uuid(employee_id, "employee")
        with self._session_factory() as db:
            row = db.query(Employee.manager_id).filter(Employee.id == eid).first()
        return row[0] if row else None

    def ids_with_role(self, role: Role, limit: int = 500) -> List[uuid.UUID]:
        with self._session_factory() as db:
            rows = (
                db.query(Employee.id)
                .filter(Employee.role == role.label, Employee.is_active.is_(True))
                .limit(limit)
                .all()
            )
        return [r[0] for r in rows]

    def names_for(self, employee_ids: List[uuid.UUID]) -> Dict[uuid.UUID, str]:
        if not employee_ids:
            return {}
        with self._session_factory() as db:
            rows = db.query(Employee.id, Employee.full_name).filter(Employee.id.in_(employee_ids)).all()
        return {r[0]: r[1] for r in rows}
