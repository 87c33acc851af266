"""
Role hierarchy and permission checks for attendance operations.
"""
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, Protocol

from .errors import PermissionDenied


class Role(IntEnum):
    """Ordered hierarchy: a higher value outranks a lower one."""
    EMPLOYEE = 1
    TEAMLEAD = 2
    HR = 3
    ADMIN = 4
    SUPERADMIN = 5

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, Role):
            return value
        name = str(value or "").strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        aliases = {"superadmin": cls.SUPERADMIN, "ceo": cls.SUPERADMIN, "admin": cls.ADMIN, "hr": cls.HR,
                   "teamlead": cls.TEAMLEAD, "manager": cls.TEAMLEAD, "employee": cls.EMPLOYEE}
        if name not in aliases:
            raise PermissionDenied(f"Unknown role: {value!r}")
        return aliases[name]

    @property
    def label(self) -> str:
        return self.name.lower()


class Action(str, Enum):
    SELF_ATTENDANCE = "attendance:self"
    ADMIN_ATTENDANCE = "attendance:admin"
    VIEW_REPORTS = "attendance:reports"
    MANAGE_MONITORING = "checkout_monitoring:manage"
    MANAGE_JOBS = "jobs:manage"


# The superadmin tier is barred from clocking in or out for itself
PERMISSION_TABLE: Dict[Action, FrozenSet[Role]] = {
    Action.SELF_ATTENDANCE: frozenset({Role.EMPLOYEE, Role.TEAMLEAD, Role.HR, Role.ADMIN}),
    Action.ADMIN_ATTENDANCE: frozenset({Role.HR, Role.ADMIN, Role.SUPERADMIN}),
    Action.VIEW_REPORTS: frozenset({Role.TEAMLEAD, Role.HR, Role.ADMIN, Role.SUPERADMIN}),
    Action.MANAGE_MONITORING: frozenset({Role.HR, Role.ADMIN, Role.SUPERADMIN}),
    Action.MANAGE_JOBS: frozenset({Role.ADMIN, Role.SUPERADMIN}),
}


class AuthorizationGateway(Protocol):
    def is_allowed(self, role: Role, action: Action) -> bool:
        ...


class RoleTableAuthorizer:
    """Default gateway backed by a static role -> action table."""

    def __init__(self, table: Dict[Action, FrozenSet[Role]] = None):
        self._table = table or PERMISSION_TABLE

    def is_allowed(self, role: Role, action: Action) -> bool:
        return role in self._table.get(action, frozenset())


def require(authz: AuthorizationGateway, role: Role, action: Action) -> None:
    if not authz.is_allowed(role, action):
        raise PermissionDenied(f"Role '{role.label}' is not allowed to perform {action.value}")
