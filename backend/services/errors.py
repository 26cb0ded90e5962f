"""
Error taxonomy for schedule operations.

Every error carries the HTTP status the REST layer answers with, so
routers never translate errors by hand.
"""

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


class ValidationError(SchedulingError):
    """Bad input shape or range."""
    status_code = 400


class InvalidDateError(ValidationError):
    """Date string that cannot be parsed."""


class InvalidTimezoneError(ValidationError):
    """Unrecognized IANA timezone name."""


class PastDateError(ValidationError):
    """Attempt to create or modify a trip in the past."""


class NotConfiguredError(ValidationError):
    """Time not present in the group's schedule configuration."""


class NoConfigError(ValidationError):
    """Group has no schedule configuration at all."""


class PermissionError(SchedulingError):  # noqa: A001 - mirrors the 403 domain name
    status_code = 403


class NotFoundError(SchedulingError):
    status_code = 404


class ConflictError(SchedulingError):
    """Capacity or double-booking conflict."""
    status_code = 409


class SlotsInUseError(ConflictError):
    """Schedule config change would orphan booked slots."""

    def __init__(self, message: str, conflicts: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "conflicts": self.conflicts}
