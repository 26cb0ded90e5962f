"""
CRUD operations for the carpool scheduling database.

Provides functions to create, read, update, and delete:
- Users, families, groups and memberships
- Group schedule configurations
- Schedule slots with vehicle and child assignments
- Activity log entries

Write helpers only flush; the calling service owns the transaction and
commits (or rolls back) once per operation.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session, joinedload

from models.schedule import DEFAULT_SCHEDULE_HOURS
from . import models

logger = logging.getLogger(__name__)

ADMIN = "ADMIN"
MEMBER = "MEMBER"


def _slot_load_options():
    return (
        joinedload(models.ScheduleSlot.group),
        joinedload(models.ScheduleSlot.vehicle_assignments).joinedload(models.ScheduleSlotVehicle.vehicle),
        joinedload(models.ScheduleSlot.vehicle_assignments).joinedload(models.ScheduleSlotVehicle.driver),
        joinedload(models.ScheduleSlot.child_assignments).joinedload(models.ScheduleSlotChild.child),
    )


# =============================================================================
# Users and families
# =============================================================================

def create_user(db: Session, email: str, name: str, timezone: str = "UTC") -> models.User:
    user = models.User(email=email, name=name, timezone=timezone)
    db.add(user)
    db.flush()
    return user


def get_user(db: Session, user_id: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == str(user_id)).first()


def create_family(db: Session, name: str, admin_user_id: Optional[str] = None) -> models.Family:
    """Create a family, optionally with its first ADMIN member."""
    family = models.Family(name=name)
    db.add(family)
    db.flush()
    if admin_user_id:
        add_family_member(db, family.id, admin_user_id, role=ADMIN)
    return family


def add_family_member(db: Session, family_id: str, user_id: str, role: str = MEMBER) -> models.FamilyMember:
    member = models.FamilyMember(family_id=str(family_id), user_id=str(user_id), role=role)
    db.add(member)
    db.flush()
    return member


def get_family_membership(db: Session, user_id: str) -> Optional[models.FamilyMember]:
    """A user belongs to at most one family."""
    return (
        db.query(models.FamilyMember)
        .filter(models.FamilyMember.user_id == str(user_id))
        .order_by(models.FamilyMember.joined_at)
        .first()
    )


def get_user_family_id(db: Session, user_id: str) -> Optional[str]:
    membership = get_family_membership(db, user_id)
    return membership.family_id if membership else None


def get_family_user_emails(db: Session, family_ids: List[str]) -> List[str]:
    if not family_ids:
        return []
    rows = (
        db.query(models.User.email)
        .join(models.FamilyMember, models.FamilyMember.user_id == models.User.id)
        .filter(models.FamilyMember.family_id.in_(family_ids))
        .distinct()
        .all()
    )
    return sorted(email for (email,) in rows)


# =============================================================================
# Children and vehicles
# =============================================================================

def create_child(db: Session, family_id: str, name: str, age: Optional[int] = None) -> models.Child:
    child = models.Child(family_id=str(family_id), name=name, age=age)
    db.add(child)
    db.flush()
    return child


def get_child(db: Session, child_id: str) -> Optional[models.Child]:
    return db.query(models.Child).filter(models.Child.id == str(child_id)).first()


def list_family_children(db: Session, family_id: str) -> List[models.Child]:
    return (
        db.query(models.Child)
        .filter(models.Child.family_id == str(family_id))
        .order_by(models.Child.name)
        .all()
    )


def create_vehicle(db: Session, family_id: str, name: str, capacity: int) -> models.Vehicle:
    vehicle = models.Vehicle(family_id=str(family_id), name=name, capacity=capacity)
    db.add(vehicle)
    db.flush()
    return vehicle


def get_vehicle(db: Session, vehicle_id: str) -> Optional[models.Vehicle]:
    return db.query(models.Vehicle).filter(models.Vehicle.id == str(vehicle_id)).first()


def count_family_children(db: Session, family_id: str) -> int:
    return db.query(func.count(models.Child.id)).filter(models.Child.family_id == str(family_id)).scalar() or 0


def count_family_vehicles(db: Session, family_id: str) -> int:
    return db.query(func.count(models.Vehicle.id)).filter(models.Vehicle.family_id == str(family_id)).scalar() or 0


# =============================================================================
# Groups
# =============================================================================

def create_group(
    db: Session,
    name: str,
    family_id: str,
    timezone: str = "UTC",
    operating_hours: Optional[Dict[str, str]] = None,
    schedule_hours: Optional[Dict[str, List[str]]] = None,
) -> models.Group:
    """
    Create a group owned by `family_id`, with the owner as ADMIN member.

    The group's schedule config is seeded with `schedule_hours`, or the
    default hours when none are given.
    """
    group = models.Group(
        name=name,
        family_id=str(family_id),
        timezone=timezone,
        operating_hours=operating_hours,
    )
    db.add(group)
    db.flush()
    add_group_family_member(db, group.id, family_id, role=ADMIN)
    upsert_schedule_config(
        db,
        group.id,
        schedule_hours if schedule_hours is not None else copy.deepcopy(DEFAULT_SCHEDULE_HOURS),
    )
    return group


def get_group(db: Session, group_id: str) -> Optional[models.Group]:
    return db.query(models.Group).filter(models.Group.id == str(group_id)).first()


def add_group_family_member(
    db: Session, group_id: str, family_id: str, role: str = MEMBER
) -> models.GroupFamilyMember:
    member = models.GroupFamilyMember(group_id=str(group_id), family_id=str(family_id), role=role)
    db.add(member)
    db.flush()
    return member


def get_group_family_ids(db: Session, group_id: str) -> List[str]:
    """Owner family plus every member family of the group."""
    group = get_group(db, group_id)
    if group is None:
        return []
    ids: Set[str] = {group.family_id}
    ids.update(m.family_id for m in group.family_members)
    return sorted(ids)


def get_family_group_ids(db: Session, family_id: str) -> List[str]:
    owned = db.query(models.Group.id).filter(models.Group.family_id == str(family_id))
    member = db.query(models.GroupFamilyMember.group_id).filter(
        models.GroupFamilyMember.family_id == str(family_id)
    )
    return sorted({row[0] for row in owned.union(member).all()})


def get_user_group_ids(db: Session, user_id: str) -> List[str]:
    family_id = get_user_family_id(db, user_id)
    if family_id is None:
        return []
    return get_family_group_ids(db, family_id)


def user_has_group_access(db: Session, user_id: str, group_id: str) -> bool:
    return str(group_id) in get_user_group_ids(db, user_id)


def is_group_admin(db: Session, user_id: str, group_id: str) -> bool:
    """
    Family ADMIN whose family owns the group or is an ADMIN member of it.
    """
    membership = get_family_membership(db, user_id)
    if membership is None or membership.role != ADMIN:
        return False
    group = get_group(db, group_id)
    if group is None:
        return False
    if group.family_id == membership.family_id:
        return True
    return (
        db.query(models.GroupFamilyMember)
        .filter(
            models.GroupFamilyMember.group_id == str(group_id),
            models.GroupFamilyMember.family_id == membership.family_id,
            models.GroupFamilyMember.role == ADMIN,
        )
        .first()
        is not None
    )


# =============================================================================
# Schedule configuration
# =============================================================================

def get_schedule_config(db: Session, group_id: str) -> Optional[models.GroupScheduleConfig]:
    return (
        db.query(models.GroupScheduleConfig)
        .filter(models.GroupScheduleConfig.group_id == str(group_id))
        .first()
    )


def upsert_schedule_config(
    db: Session, group_id: str, schedule_hours: Dict[str, List[str]]
) -> models.GroupScheduleConfig:
    config_row = get_schedule_config(db, group_id)
    if config_row is None:
        config_row = models.GroupScheduleConfig(group_id=str(group_id), schedule_hours=schedule_hours)
        db.add(config_row)
    else:
        # Reassign so the JSON column is flagged dirty.
        config_row.schedule_hours = dict(schedule_hours)
        config_row.updated_at = datetime.utcnow()
    db.flush()
    return config_row


def list_groups_without_config(db: Session) -> List[models.Group]:
    return (
        db.query(models.Group)
        .outerjoin(models.GroupScheduleConfig, models.GroupScheduleConfig.group_id == models.Group.id)
        .filter(models.GroupScheduleConfig.id.is_(None))
        .all()
    )


# =============================================================================
# Schedule slots
# =============================================================================

def create_slot(db: Session, group_id: str, slot_datetime: datetime) -> models.ScheduleSlot:
    slot = models.ScheduleSlot(group_id=str(group_id), datetime=slot_datetime)
    db.add(slot)
    db.flush()
    return slot


def get_slot(db: Session, slot_id: str) -> Optional[models.ScheduleSlot]:
    """Slot hydrated with group, vehicles, drivers and children."""
    return (
        db.query(models.ScheduleSlot)
        .options(*_slot_load_options())
        .filter(models.ScheduleSlot.id == str(slot_id))
        .first()
    )


def get_slot_group_id(db: Session, slot_id: str) -> Optional[str]:
    row = (
        db.query(models.ScheduleSlot.group_id)
        .filter(models.ScheduleSlot.id == str(slot_id))
        .first()
    )
    return row[0] if row else None


def lock_group(db: Session, group_id: str) -> Optional[models.Group]:
    """
    Load a group with SELECT ... FOR UPDATE.

    Slot mutations take this lock before the slot lock, so checks against
    sibling slots of the group run serialized. SQLite ignores the lock clause.
    """
    return (
        db.query(models.Group)
        .filter(models.Group.id == str(group_id))
        .with_for_update()
        .first()
    )


def lock_slot(db: Session, slot_id: str) -> Optional[models.ScheduleSlot]:
    """
    Load a slot with SELECT ... FOR UPDATE.

    Serializes concurrent mutations of the same slot until the caller's
    transaction ends. SQLite ignores the lock clause.
    """
    return (
        db.query(models.ScheduleSlot)
        .filter(models.ScheduleSlot.id == str(slot_id))
        .with_for_update()
        .first()
    )


def delete_slot(db: Session, slot: models.ScheduleSlot) -> None:
    db.delete(slot)
    db.flush()


def find_sibling_slots(
    db: Session, group_id: str, slot_datetime: datetime, exclude_slot_id: Optional[str] = None
) -> List[models.ScheduleSlot]:
    """Other slots of the same group at the identical datetime."""
    query = (
        db.query(models.ScheduleSlot)
        .options(*_slot_load_options())
        .filter(
            models.ScheduleSlot.group_id == str(group_id),
            models.ScheduleSlot.datetime == slot_datetime,
        )
    )
    if exclude_slot_id:
        query = query.filter(models.ScheduleSlot.id != str(exclude_slot_id))
    return query.all()


def get_weekly_schedule_by_date_range(
    db: Session, group_id: str, start: datetime, end: datetime
) -> List[models.ScheduleSlot]:
    return (
        db.query(models.ScheduleSlot)
        .options(*_slot_load_options())
        .filter(
            models.ScheduleSlot.group_id == str(group_id),
            models.ScheduleSlot.datetime >= start,
            models.ScheduleSlot.datetime <= end,
        )
        .order_by(models.ScheduleSlot.datetime)
        .all()
    )


def get_future_booked_slots(db: Session, group_id: str, now: datetime) -> List[Dict[str, Any]]:
    """Future slots of a group that have at least one child assigned, with counts."""
    rows = (
        db.query(models.ScheduleSlot, func.count(models.ScheduleSlotChild.id))
        .join(models.ScheduleSlotChild, models.ScheduleSlotChild.schedule_slot_id == models.ScheduleSlot.id)
        .filter(
            models.ScheduleSlot.group_id == str(group_id),
            models.ScheduleSlot.datetime >= now,
        )
        .group_by(models.ScheduleSlot.id)
        .order_by(models.ScheduleSlot.datetime)
        .all()
    )
    return [{"slot": slot, "child_count": count} for slot, count in rows]


def find_conflicting_slots_for_parent(db: Session, user_id: str, slot_datetime: datetime) -> List[models.ScheduleSlot]:
    """
    Slots at `slot_datetime` where the user drives, or the user's family
    owns an assigned vehicle or an assigned child.
    """
    family_id = get_user_family_id(db, user_id)
    conditions = [models.ScheduleSlotVehicle.driver_id == str(user_id)]
    if family_id:
        conditions.append(models.Vehicle.family_id == family_id)
        conditions.append(models.Child.family_id == family_id)

    return (
        db.query(models.ScheduleSlot)
        .outerjoin(models.ScheduleSlotVehicle, models.ScheduleSlotVehicle.schedule_slot_id == models.ScheduleSlot.id)
        .outerjoin(models.Vehicle, models.Vehicle.id == models.ScheduleSlotVehicle.vehicle_id)
        .outerjoin(models.ScheduleSlotChild, models.ScheduleSlotChild.schedule_slot_id == models.ScheduleSlot.id)
        .outerjoin(models.Child, models.Child.id == models.ScheduleSlotChild.child_id)
        .filter(models.ScheduleSlot.datetime == slot_datetime, or_(*conditions))
        .distinct()
        .all()
    )


def get_user_slots_in_range(
    db: Session, user_id: str, start: datetime, end: datetime
) -> List[models.ScheduleSlot]:
    """
    Slots in range that belong to the user's groups, or that the user
    drives, or where the user's family has a child assigned.
    """
    family_id = get_user_family_id(db, user_id)
    group_ids = get_family_group_ids(db, family_id) if family_id else []

    conditions = [models.ScheduleSlotVehicle.driver_id == str(user_id)]
    if group_ids:
        conditions.append(models.ScheduleSlot.group_id.in_(group_ids))
    if family_id:
        conditions.append(models.Child.family_id == family_id)

    rows = (
        db.query(models.ScheduleSlot.id)
        .outerjoin(models.ScheduleSlotVehicle, models.ScheduleSlotVehicle.schedule_slot_id == models.ScheduleSlot.id)
        .outerjoin(models.ScheduleSlotChild, models.ScheduleSlotChild.schedule_slot_id == models.ScheduleSlot.id)
        .outerjoin(models.Child, models.Child.id == models.ScheduleSlotChild.child_id)
        .filter(
            models.ScheduleSlot.datetime >= start,
            models.ScheduleSlot.datetime <= end,
            or_(*conditions),
        )
        .distinct()
        .all()
    )
    slot_ids = [row[0] for row in rows]
    if not slot_ids:
        return []
    return (
        db.query(models.ScheduleSlot)
        .options(*_slot_load_options())
        .filter(models.ScheduleSlot.id.in_(slot_ids))
        .order_by(models.ScheduleSlot.datetime)
        .all()
    )


# =============================================================================
# Vehicle assignments
# =============================================================================

def add_vehicle_assignment(
    db: Session,
    slot_id: str,
    vehicle_id: str,
    driver_id: Optional[str] = None,
    seat_override: Optional[int] = None,
) -> models.ScheduleSlotVehicle:
    assignment = models.ScheduleSlotVehicle(
        schedule_slot_id=str(slot_id),
        vehicle_id=str(vehicle_id),
        driver_id=str(driver_id) if driver_id else None,
        seat_override=seat_override,
    )
    db.add(assignment)
    db.flush()
    return assignment


def get_vehicle_assignment(db: Session, slot_id: str, vehicle_id: str) -> Optional[models.ScheduleSlotVehicle]:
    return (
        db.query(models.ScheduleSlotVehicle)
        .filter(
            models.ScheduleSlotVehicle.schedule_slot_id == str(slot_id),
            models.ScheduleSlotVehicle.vehicle_id == str(vehicle_id),
        )
        .first()
    )


def find_vehicle_assignment_by_id(db: Session, assignment_id: str) -> Optional[models.ScheduleSlotVehicle]:
    return (
        db.query(models.ScheduleSlotVehicle)
        .options(
            joinedload(models.ScheduleSlotVehicle.vehicle),
            joinedload(models.ScheduleSlotVehicle.driver),
            joinedload(models.ScheduleSlotVehicle.schedule_slot),
        )
        .filter(models.ScheduleSlotVehicle.id == str(assignment_id))
        .first()
    )


def remove_vehicle_from_slot(db: Session, assignment: models.ScheduleSlotVehicle) -> bool:
    """
    Delete a vehicle assignment and its child assignments.

    Returns True when the slot had no vehicle left and was deleted too.
    """
    slot = assignment.schedule_slot
    db.delete(assignment)
    db.flush()
    db.expire(slot, ["vehicle_assignments", "child_assignments"])

    if not slot.vehicle_assignments:
        logger.info(f"Slot {slot.id} has no vehicles left, deleting it")
        delete_slot(db, slot)
        return True
    return False


def update_vehicle_driver(
    db: Session, assignment: models.ScheduleSlotVehicle, driver_id: Optional[str]
) -> models.ScheduleSlotVehicle:
    assignment.driver_id = str(driver_id) if driver_id else None
    db.flush()
    db.expire(assignment, ["driver"])
    return assignment


def update_seat_override(
    db: Session, assignment: models.ScheduleSlotVehicle, seat_override: Optional[int]
) -> models.ScheduleSlotVehicle:
    assignment.seat_override = seat_override
    db.flush()
    return assignment


# =============================================================================
# Child assignments
# =============================================================================

def add_child_assignment(
    db: Session, slot_id: str, child_id: str, vehicle_assignment_id: str
) -> models.ScheduleSlotChild:
    assignment = models.ScheduleSlotChild(
        schedule_slot_id=str(slot_id),
        child_id=str(child_id),
        vehicle_assignment_id=str(vehicle_assignment_id),
    )
    db.add(assignment)
    db.flush()
    return assignment


def get_child_assignment(db: Session, slot_id: str, child_id: str) -> Optional[models.ScheduleSlotChild]:
    return (
        db.query(models.ScheduleSlotChild)
        .filter(
            models.ScheduleSlotChild.schedule_slot_id == str(slot_id),
            models.ScheduleSlotChild.child_id == str(child_id),
        )
        .first()
    )


def count_vehicle_assignment_children(db: Session, vehicle_assignment_id: str) -> int:
    return (
        db.query(func.count(models.ScheduleSlotChild.id))
        .filter(models.ScheduleSlotChild.vehicle_assignment_id == str(vehicle_assignment_id))
        .scalar()
        or 0
    )


def remove_child_from_slot(db: Session, assignment: models.ScheduleSlotChild) -> None:
    db.delete(assignment)
    db.flush()


# =============================================================================
# Activity log
# =============================================================================

def create_activity_log(
    db: Session,
    user_id: str,
    action_type: str,
    action_description: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_name: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> models.ActivityLog:
    entry = models.ActivityLog(
        user_id=str(user_id),
        action_type=action_type,
        action_description=action_description,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else None,
        entity_name=entity_name,
        metadata_json=metadata,
    )
    db.add(entry)
    db.flush()
    return entry


def get_recent_activity(db: Session, user_id: str, limit: int = 10) -> List[models.ActivityLog]:
    return (
        db.query(models.ActivityLog)
        .filter(models.ActivityLog.user_id == str(user_id))
        .order_by(desc(models.ActivityLog.created_at))
        .limit(limit)
        .all()
    )
