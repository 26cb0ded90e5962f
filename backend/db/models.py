"""
SQLAlchemy models for the carpool scheduling database.

These models define the database schema for:
- Users, families and family membership
- Groups, group membership and weekly schedule configuration
- Children and vehicles
- Schedule slots with their vehicle and child assignments
- Activity log entries

All datetimes are stored as naive UTC values.
"""

from sqlalchemy import (
    Column, String, Integer, DateTime,
    ForeignKey, JSON, Text, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.dialects.postgresql import UUID as PGUUID
import uuid
from datetime import datetime

Base = declarative_base()


# Cross-database compatible types.
# PostgreSQL keeps native UUID, SQLite uses String fallback.
UUIDType = PGUUID(as_uuid=False).with_variant(String(36), "sqlite")


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Application user (parent or driver)"""
    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    created_at = Column(DateTime, default=datetime.utcnow)

    family_memberships = relationship("FamilyMember", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}')>"


class Family(Base):
    """Household owning children and vehicles"""
    __tablename__ = "families"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship("FamilyMember", back_populates="family", cascade="all, delete-orphan")
    children = relationship("Child", back_populates="family", cascade="all, delete-orphan")
    vehicles = relationship("Vehicle", back_populates="family", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Family(id='{self.id}', name='{self.name}')>"


class FamilyMember(Base):
    """User membership in a family (ADMIN or MEMBER)"""
    __tablename__ = "family_members"
    __table_args__ = (
        UniqueConstraint("family_id", "user_id", name="uq_family_member"),
    )

    id = Column(UUIDType, primary_key=True, default=_uuid)
    family_id = Column(UUIDType, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False, default="MEMBER")
    joined_at = Column(DateTime, default=datetime.utcnow)

    family = relationship("Family", back_populates="members")
    user = relationship("User", back_populates="family_memberships")


class Group(Base):
    """Collaborative transport group owned by one family"""
    __tablename__ = "groups"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    family_id = Column(UUIDType, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    operating_hours = Column(JSON, nullable=True)  # {"start_hour": "06:00", "end_hour": "20:00"}
    created_at = Column(DateTime, default=datetime.utcnow)

    owner_family = relationship("Family")
    family_members = relationship("GroupFamilyMember", back_populates="group", cascade="all, delete-orphan")
    schedule_config = relationship(
        "GroupScheduleConfig",
        back_populates="group",
        uselist=False,
        cascade="all, delete-orphan",
    )
    schedule_slots = relationship("ScheduleSlot", back_populates="group", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Group(id='{self.id}', name='{self.name}', timezone='{self.timezone}')>"


class GroupFamilyMember(Base):
    """Family participating in a group (ADMIN or MEMBER)"""
    __tablename__ = "group_family_members"
    __table_args__ = (
        UniqueConstraint("group_id", "family_id", name="uq_group_family"),
    )

    id = Column(UUIDType, primary_key=True, default=_uuid)
    group_id = Column(UUIDType, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    family_id = Column(UUIDType, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(16), nullable=False, default="MEMBER")
    joined_at = Column(DateTime, default=datetime.utcnow)

    group = relationship("Group", back_populates="family_members")
    family = relationship("Family")


class GroupScheduleConfig(Base):
    """Weekday -> allowed local times (HH:MM) for one group"""
    __tablename__ = "group_schedule_configs"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    group_id = Column(UUIDType, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, unique=True)
    schedule_hours = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    group = relationship("Group", back_populates="schedule_config")


class Child(Base):
    """Child transported by the group"""
    __tablename__ = "children"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    family_id = Column(UUIDType, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    family = relationship("Family", back_populates="children")


class Vehicle(Base):
    """Family vehicle with a nominal seat capacity"""
    __tablename__ = "vehicles"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False)
    family_id = Column(UUIDType, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    family = relationship("Family", back_populates="vehicles")


class ScheduleSlot(Base):
    """One transport occurrence at a UTC instant within a group"""
    __tablename__ = "schedule_slots"
    __table_args__ = (
        Index("ix_schedule_slots_group_datetime", "group_id", "datetime"),
    )

    id = Column(UUIDType, primary_key=True, default=_uuid)
    group_id = Column(UUIDType, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    # Shadows the datetime class for the rest of the class body.
    datetime = Column(DateTime, nullable=False)

    group = relationship("Group", back_populates="schedule_slots")
    vehicle_assignments = relationship(
        "ScheduleSlotVehicle",
        back_populates="schedule_slot",
        cascade="all, delete-orphan",
        order_by="ScheduleSlotVehicle.created_at",
    )
    child_assignments = relationship(
        "ScheduleSlotChild",
        back_populates="schedule_slot",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ScheduleSlot(id='{self.id}', group_id='{self.group_id}', datetime='{self.datetime}')>"


class ScheduleSlotVehicle(Base):
    """Vehicle (+ optional driver and seat override) assigned to a slot"""
    __tablename__ = "schedule_slot_vehicles"
    __table_args__ = (
        UniqueConstraint("schedule_slot_id", "vehicle_id", name="uq_slot_vehicle"),
    )

    id = Column(UUIDType, primary_key=True, default=_uuid)
    schedule_slot_id = Column(UUIDType, ForeignKey("schedule_slots.id", ondelete="CASCADE"), nullable=False)
    vehicle_id = Column(UUIDType, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    driver_id = Column(UUIDType, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    seat_override = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    schedule_slot = relationship("ScheduleSlot", back_populates="vehicle_assignments")
    vehicle = relationship("Vehicle")
    driver = relationship("User")
    child_assignments = relationship(
        "ScheduleSlotChild",
        back_populates="vehicle_assignment",
        cascade="all, delete-orphan",
    )

    @property
    def effective_capacity(self) -> int:
        if self.seat_override is not None:
            return self.seat_override
        return self.vehicle.capacity if self.vehicle else 0


class ScheduleSlotChild(Base):
    """Child seated in one vehicle assignment of a slot"""
    __tablename__ = "schedule_slot_children"
    __table_args__ = (
        UniqueConstraint("schedule_slot_id", "child_id", name="uq_slot_child"),
    )

    id = Column(UUIDType, primary_key=True, default=_uuid)
    schedule_slot_id = Column(UUIDType, ForeignKey("schedule_slots.id", ondelete="CASCADE"), nullable=False)
    child_id = Column(UUIDType, ForeignKey("children.id", ondelete="CASCADE"), nullable=False)
    vehicle_assignment_id = Column(
        UUIDType,
        ForeignKey("schedule_slot_vehicles.id", ondelete="CASCADE"),
        nullable=False,
    )
    assigned_at = Column(DateTime, default=datetime.utcnow)

    schedule_slot = relationship("ScheduleSlot", back_populates="child_assignments")
    vehicle_assignment = relationship(
        "ScheduleSlotVehicle",
        back_populates="child_assignments",
    )
    child = relationship("Child")


class ActivityLog(Base):
    """User-visible activity feed entry"""
    __tablename__ = "activity_logs"

    id = Column(UUIDType, primary_key=True, default=_uuid)
    user_id = Column(UUIDType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(64), nullable=False)
    action_description = Column(Text, nullable=False)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(String(64), nullable=True)
    entity_name = Column(String(255), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User")
