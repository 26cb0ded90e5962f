"""
Pydantic schemas for database operations.

These schemas are used for:
- Request validation (input data)
- Response serialization (output data)
- Type safety between API and database
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from models.schedule import ConflictType


# =============================================================================
# Shared summaries
# =============================================================================

class UserSummary(BaseModel):
    id: str
    name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class VehicleSummary(BaseModel):
    id: str
    name: str
    capacity: int

    class Config:
        from_attributes = True


class ChildSummary(BaseModel):
    id: str
    name: str
    age: Optional[int] = None

    class Config:
        from_attributes = True


# =============================================================================
# Schedule config schemas
# =============================================================================

class ScheduleConfigUpdate(BaseModel):
    """Schema for replacing a group's weekly schedule hours"""
    schedule_hours: Dict[str, List[str]] = Field(..., description="WEEKDAY -> list of HH:MM local times")


class ScheduleConfigResponse(BaseModel):
    """Schema for a group's schedule configuration"""
    id: Optional[str] = None
    group_id: str
    group_name: Optional[str] = None
    schedule_hours: Dict[str, List[str]]
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TimeSlotsResponse(BaseModel):
    group_id: str
    weekday: str
    time_slots: List[str]


# =============================================================================
# Schedule slot requests
# =============================================================================

class SlotCreateRequest(BaseModel):
    """Schema for creating a slot together with its first vehicle"""
    datetime: str = Field(..., description="ISO-8601 UTC instant of the trip")
    vehicle_id: str
    driver_id: Optional[str] = None
    seat_override: Optional[int] = None


class VehicleAssignRequest(BaseModel):
    vehicle_id: str
    driver_id: Optional[str] = None
    seat_override: Optional[int] = None


class DriverUpdateRequest(BaseModel):
    driver_id: Optional[str] = None


class SeatOverrideUpdateRequest(BaseModel):
    seat_override: Optional[int] = None


class ChildAssignRequest(BaseModel):
    child_id: str
    vehicle_assignment_id: str

    @field_validator("child_id", "vehicle_assignment_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


# =============================================================================
# Schedule slot responses
# =============================================================================

class VehicleAssignmentResponse(BaseModel):
    """Vehicle assignment within a slot, with per-vehicle seat usage"""
    id: str
    vehicle: VehicleSummary
    driver: Optional[UserSummary] = None
    seat_override: Optional[int] = None
    effective_capacity: int
    child_count: int = 0

    @computed_field
    @property
    def available_seats(self) -> int:
        return self.effective_capacity - self.child_count


class ChildAssignmentResponse(BaseModel):
    child: ChildSummary
    vehicle_assignment_id: str
    assigned_at: Optional[datetime] = None


class ScheduleSlotResponse(BaseModel):
    """Hydrated slot with aggregate capacity"""
    id: str
    group_id: str
    datetime: datetime
    vehicle_assignments: List[VehicleAssignmentResponse] = Field(default_factory=list)
    child_assignments: List[ChildAssignmentResponse] = Field(default_factory=list)
    total_capacity: int
    available_seats: int
    utilization: float = 0.0
    is_at_capacity: bool = False
    conflicts: List[ConflictType] = Field(default_factory=list)

    @computed_field
    @property
    def child_count(self) -> int:
        return len(self.child_assignments)


class ScheduleResponse(BaseModel):
    group_id: str
    start_date: datetime
    end_date: datetime
    schedule_slots: List[ScheduleSlotResponse] = Field(default_factory=list)


class VehicleRemovalResponse(BaseModel):
    slot_deleted: bool
    slot: Optional[ScheduleSlotResponse] = None
