"""
Database module for the carpool scheduler.

This module provides PostgreSQL integration using SQLAlchemy.
It can be disabled by setting USE_DATABASE=false in environment variables.
"""

from .database import (
    get_db,
    SessionLocal,
    engine,
    Base,
    USE_DATABASE,
    is_database_available,
)
from .models import (
    User,
    Family,
    FamilyMember,
    Group,
    GroupFamilyMember,
    GroupScheduleConfig,
    Child,
    Vehicle,
    ScheduleSlot,
    ScheduleSlotVehicle,
    ScheduleSlotChild,
    ActivityLog,
)
from . import crud, schemas

__all__ = [
    "get_db",
    "SessionLocal",
    "engine",
    "Base",
    "USE_DATABASE",
    "is_database_available",
    "User",
    "Family",
    "FamilyMember",
    "Group",
    "GroupFamilyMember",
    "GroupScheduleConfig",
    "Child",
    "Vehicle",
    "ScheduleSlot",
    "ScheduleSlotVehicle",
    "ScheduleSlotChild",
    "ActivityLog",
    "crud",
    "schemas",
]
