"""
Domain errors raised by the attendance core.
Routes never catch these; one exception handler in main.py maps them to HTTP.
"""


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def extras(self) -> dict:
        return {}


class ValidationError(DomainError):
    """Missing or invalid input; nothing was persisted."""

    code = "validation_error"


class PermissionDenied(DomainError):
    status_code = 403
    code = "permission_denied"


class SundayBlocked(DomainError):
    status_code = 403
    code = "sunday_blocked"

    def __init__(self, message: str = "Attendance actions are not allowed on Sunday"):
        super().__init__(message)


class GeofenceViolation(DomainError):
    status_code = 403
    code = "geofence_violation"

    def __init__(self, distance: float, max_allowed: float):
        km = distance / 1000
        super().__init__(
            f"You are {km:.1f}km from the office. Maximum allowed today is {max_allowed:.0f}m."
        )
        self.distance = distance
        self.max_allowed = max_allowed

    def extras(self) -> dict:
        return {"distance": round(self.distance), "max_allowed": self.max_allowed}


class ConflictError(DomainError):
    status_code = 409
    code = "conflict"


class AlreadyCheckedIn(ConflictError):
    code = "already_checked_in"

    def __init__(self, message: str = "Already checked in today"):
        super().__init__(message)


class NoActiveCheckIn(ConflictError):
    code = "no_active_check_in"

    def __init__(self, message: str = "No active check-in found for today"):
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"
