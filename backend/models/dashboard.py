"""
Dashboard data models.

Each dashboard section is computed independently and wrapped in a
SectionResult, so one failing query renders as an "unavailable" card
instead of failing the whole page.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class SectionStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"


class SectionResult(BaseModel):
    status: SectionStatus
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "SectionResult":
        return cls(status=SectionStatus.OK, data=data)

    @classmethod
    def unavailable(cls, error: str) -> "SectionResult":
        return cls(status=SectionStatus.UNAVAILABLE, error=error)


class Trend(BaseModel):
    value: str = "Active"
    direction: str = "neutral"
    period: str = "current"


class DashboardStats(BaseModel):
    groups: int = 0
    children: int = 0
    vehicles: int = 0
    this_week_trips: int = 0
    trends: dict = Field(default_factory=dict, description="Trend per counter")


class TripChild(BaseModel):
    id: str
    name: str


class TripVehicle(BaseModel):
    id: str
    name: str
    capacity: int


class Trip(BaseModel):
    """One upcoming slot seen from the user's perspective."""

    id: str
    group_id: str
    group_name: Optional[str] = None
    datetime: datetime
    date: str = Field(..., description="YYYY-MM-DD (UTC)")
    time: str = Field(..., description="HH:MM (UTC)")
    type: str = Field(..., description="pickup before noon, dropoff after")
    destination: str
    vehicles: List[TripVehicle] = Field(default_factory=list)
    driver: Optional[str] = None
    children: List[TripChild] = Field(default_factory=list)


class ActivityItem(BaseModel):
    id: str
    action: str
    action_type: str
    time: str = Field(..., description="Relative time, e.g. '5 minutes ago'")
    timestamp: datetime
    type: str = Field(..., description="group, vehicle, child or schedule")
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None


class DashboardOverview(BaseModel):
    stats: SectionResult
    today_trips: SectionResult
    weekly_trips: SectionResult
    recent_activity: SectionResult
