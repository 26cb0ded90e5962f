"""
Domain models for schedules and the dashboard.
"""

from .schedule import ChangeType, ConflictDetail, ConflictType
from .dashboard import (
    ActivityItem,
    DashboardOverview,
    DashboardStats,
    SectionResult,
    SectionStatus,
    Trip,
)

__all__ = [
    "ChangeType",
    "ConflictDetail",
    "ConflictType",
    "ActivityItem",
    "DashboardOverview",
    "DashboardStats",
    "SectionResult",
    "SectionStatus",
    "Trip",
]
