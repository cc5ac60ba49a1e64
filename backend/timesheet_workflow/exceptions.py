"""Domain exceptions raised by the workflow services.

The HTTP layer maps each class to a status code, services never deal with
HTTP concerns directly.
"""

from typing import Any, Dict, Optional

from timesheet_workflow.constants.violation_reasons import ReasonCode


class TimesheetServiceError(Exception):
    """Base class for all workflow errors."""

    status_code = 400

    def __init__(self, message: str, reason_code: Optional[ReasonCode] = None):
        super().__init__(message)
        self.message = message
        self.reason_code = reason_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "error_type": type(self).__name__,
            "reason_code": self.reason_code.value if self.reason_code else None,
        }


class ValidationError(TimesheetServiceError):
    """Input failed a business rule (hours, duplicates, ceilings, reasons)."""
    status_code = 400


class ConflictError(TimesheetServiceError):
    """A record already exists where at most one is allowed."""
    status_code = 409


class NotFoundError(TimesheetServiceError):
    status_code = 404


class AuthorizationError(TimesheetServiceError):
    """Actor lacks permission for the requested operation."""
    status_code = 403


class TimesheetError(TimesheetServiceError):
    """Operation is not valid for the timesheet's current state."""
    status_code = 400
