# missionhub/core/exceptions.py
"""Custom exceptions for the MissionHub roster application."""
from typing import Any, Dict, Optional


class RosterException(Exception):
    """Base exception for roster operations.

    Carries a stable machine-readable ``code`` next to the human message so
    callers can branch on the failure without parsing text.
    """
    status_code: int = 500
    code: str = "internal"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(RosterException):
    """Mission, enrollment, mentor, group or form is absent."""
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, id: Any = None, details: Optional[Dict[str, Any]] = None):
        message = f"{resource} not found"
        if id is not None:
            message += f" with id: {id}"
        super().__init__(message, details)


class ConflictError(RosterException):
    """Duplicate enrollment, duplicate group membership, capacity exceeded."""
    status_code = 409
    code = "conflict"


class InvalidInputError(RosterException):
    """Missing required field, unknown action or status value."""
    status_code = 400
    code = "invalid_input"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)


class PreconditionError(RosterException):
    """Student lacks an approved batch membership or is not an active student."""
    status_code = 400
    code = "precondition_failed"


class InternalError(RosterException):
    """Store failure."""
    status_code = 500
    code = "internal"
