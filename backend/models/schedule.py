"""
Domain enums and constants for schedule slots.

Conflict labels are derived on read and never persisted.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

# Capacity reported for a slot without any vehicle assignment.
UNLIMITED_CAPACITY = 999

MIN_SEAT_OVERRIDE = 1
MAX_SEAT_OVERRIDE = 10

MAX_TIMES_PER_WEEKDAY = 20
MIN_INTERVAL_MINUTES = 15

DEFAULT_WEEKDAY_TIMES: List[str] = [
    "07:00", "07:30", "08:00", "08:30",
    "15:00", "15:30", "16:00", "16:30",
]

DEFAULT_SCHEDULE_HOURS: Dict[str, List[str]] = {
    weekday: list(DEFAULT_WEEKDAY_TIMES)
    for weekday in ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY")
}


class ChangeType(str, Enum):
    """Kinds of slot change that trigger a notification."""

    SLOT_CREATED = "SLOT_CREATED"
    VEHICLE_ASSIGNED = "VEHICLE_ASSIGNED"
    VEHICLE_REMOVED = "VEHICLE_REMOVED"
    CHILD_ASSIGNED = "CHILD_ASSIGNED"
    CHILD_REMOVED = "CHILD_REMOVED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    SEAT_OVERRIDE_UPDATED = "SEAT_OVERRIDE_UPDATED"


class ConflictType(str, Enum):
    """Conflict labels computed for a slot."""

    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DRIVER_DOUBLE_BOOKING = "DRIVER_DOUBLE_BOOKING"
    VEHICLE_DOUBLE_BOOKING = "VEHICLE_DOUBLE_BOOKING"


class ConflictDetail(BaseModel):
    """A conflict detected on a slot."""

    type: ConflictType = Field(..., description="Conflict label")
    message: str = Field(..., description="Human readable description")
    conflicting_slot_ids: List[str] = Field(default_factory=list)
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
