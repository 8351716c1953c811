"""
Domain errors raised by the service layer.

Each error carries a stable ``kind`` and the HTTP status the API layer maps
it to. Validation and conflict errors carry enough detail for the caller to
correct the request; internal errors are surfaced generically.
"""
from typing import Any, Dict, Optional


class LetsMeetError(Exception):
    """Base class for all domain errors"""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.kind, "detail": self.message}
        if self.field:
            body["field"] = self.field
        return body


class UnauthorizedError(LetsMeetError):
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(LetsMeetError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(LetsMeetError):
    kind = "not_found"
    status_code = 404


class ValidationFailed(LetsMeetError):
    kind = "validation"
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)


class ConflictError(LetsMeetError):
    kind = "conflict"
    status_code = 409


class CapacityExceeded(ConflictError):
    """No free seat left in the meeting"""

    kind = "capacity"


class InternalError(LetsMeetError):
    kind = "internal"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
