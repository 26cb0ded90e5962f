"""
Capacity, availability and conflict checks for schedule slots.

Availability checks raise before a mutation is written; conflict
detection only reports labels for an existing slot.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from db import crud, models
from models.schedule import (
    MAX_SEAT_OVERRIDE,
    MIN_SEAT_OVERRIDE,
    UNLIMITED_CAPACITY,
    ConflictDetail,
    ConflictType,
)
from services.errors import ConflictError, NotFoundError, ValidationError
from services.timezone_utils import format_datetime_for_user

logger = logging.getLogger(__name__)


def validate_seat_override(seat_override: Optional[int]) -> None:
    """None clears the override; anything else must be an int in range."""
    if seat_override is None:
        return
    if isinstance(seat_override, bool) or not isinstance(seat_override, int):
        raise ValidationError("Seat override must be an integer")
    if seat_override < MIN_SEAT_OVERRIDE:
        raise ValidationError(f"Seat override must be at least {MIN_SEAT_OVERRIDE}")
    if seat_override > MAX_SEAT_OVERRIDE:
        raise ValidationError(f"Seat override cannot exceed {MAX_SEAT_OVERRIDE}")


def linked_child_assignments(slot: models.ScheduleSlot) -> List[models.ScheduleSlotChild]:
    """
    Child assignments whose vehicle assignment belongs to this slot.

    Rows pointing elsewhere are reported and left out of every count.
    """
    assignment_ids = {va.id for va in slot.vehicle_assignments}
    linked = []
    for assignment in slot.child_assignments:
        if assignment.vehicle_assignment_id not in assignment_ids:
            logger.warning(
                f"Child assignment {assignment.id} in slot {slot.id} references vehicle assignment "
                f"{assignment.vehicle_assignment_id} outside the slot; ignoring it"
            )
            continue
        linked.append(assignment)
    return linked


def total_capacity(slot: models.ScheduleSlot) -> int:
    """Sum of effective capacities, or the unlimited sentinel without vehicles."""
    if not slot.vehicle_assignments:
        return UNLIMITED_CAPACITY
    return sum(va.effective_capacity for va in slot.vehicle_assignments)


def get_slot_stats(slot: models.ScheduleSlot) -> Dict[str, Any]:
    """Capacity figures shown with every slot."""
    capacity = total_capacity(slot)
    child_count = len(linked_child_assignments(slot))
    has_vehicles = bool(slot.vehicle_assignments)
    return {
        "total_capacity": capacity,
        "available_seats": capacity - child_count,
        "utilization": round(child_count / capacity * 100, 1) if has_vehicles else 0.0,
        "is_at_capacity": has_vehicles and child_count >= capacity,
    }


def validate_slot_integrity(slot: models.ScheduleSlot) -> None:
    """
    Raises ConflictError when children have no vehicle to ride in, or when
    any vehicle (or the slot as a whole) carries more children than seats.
    """
    children = linked_child_assignments(slot)
    if children and not slot.vehicle_assignments:
        raise ConflictError("Children are assigned but no vehicle is available in this slot")

    for va in slot.vehicle_assignments:
        seated = sum(1 for c in children if c.vehicle_assignment_id == va.id)
        if seated > va.effective_capacity:
            name = va.vehicle.name if va.vehicle else va.vehicle_id
            raise ConflictError(
                f"Vehicle {name} has {seated} children assigned but only {va.effective_capacity} seats"
            )

    capacity = total_capacity(slot)
    if len(children) > capacity:
        raise ConflictError(f"Slot capacity exceeded ({len(children)}/{capacity})")


class ScheduleSlotValidationService:
    """Availability checks and conflict detection against sibling slots."""

    def __init__(self, db: Session):
        self.db = db

    def _siblings(self, slot: models.ScheduleSlot) -> List[models.ScheduleSlot]:
        return crud.find_sibling_slots(self.db, slot.group_id, slot.datetime, exclude_slot_id=slot.id)

    def validate_vehicle_availability(self, slot: models.ScheduleSlot, vehicle_id: str, tz_name: str) -> None:
        if any(va.vehicle_id == str(vehicle_id) for va in slot.vehicle_assignments):
            raise ConflictError("Vehicle is already assigned to this schedule slot")

        for sibling in self._siblings(slot):
            if any(va.vehicle_id == str(vehicle_id) for va in sibling.vehicle_assignments):
                raise ConflictError(
                    "Vehicle is already assigned to another schedule slot at "
                    f"{format_datetime_for_user(slot.datetime, tz_name)}"
                )

    def validate_driver_availability(
        self,
        slot: models.ScheduleSlot,
        driver_id: Optional[str],
        tz_name: str,
        exclude_assignment_id: Optional[str] = None,
    ) -> None:
        """Driver must not drive another vehicle in this slot or a sibling slot."""
        if not driver_id:
            return
        if crud.get_user(self.db, driver_id) is None:
            raise NotFoundError(f"Driver {driver_id} not found")

        for va in slot.vehicle_assignments:
            if va.id != exclude_assignment_id and va.driver_id == str(driver_id):
                raise ConflictError("Driver is already driving another vehicle in this schedule slot")

        for sibling in self._siblings(slot):
            if any(va.driver_id == str(driver_id) for va in sibling.vehicle_assignments):
                raise ConflictError(
                    "Driver is already assigned to another schedule slot at "
                    f"{format_datetime_for_user(slot.datetime, tz_name)}"
                )

    def detect_conflicts(self, slot: models.ScheduleSlot) -> List[ConflictDetail]:
        """Conflict details for a slot, without mutating anything."""
        conflicts: List[ConflictDetail] = []

        capacity = total_capacity(slot)
        child_count = len(linked_child_assignments(slot))
        if slot.vehicle_assignments and child_count > capacity:
            conflicts.append(ConflictDetail(
                type=ConflictType.CAPACITY_EXCEEDED,
                message=f"{child_count} children assigned for {capacity} seats",
            ))

        siblings = self._siblings(slot)
        drivers = {va.driver_id for va in slot.vehicle_assignments if va.driver_id}
        vehicles = {va.vehicle_id for va in slot.vehicle_assignments}

        for driver_id in sorted(drivers):
            own_count = sum(1 for va in slot.vehicle_assignments if va.driver_id == driver_id)
            clashing = [
                s.id for s in siblings
                if any(va.driver_id == driver_id for va in s.vehicle_assignments)
            ]
            if clashing or own_count > 1:
                conflicts.append(ConflictDetail(
                    type=ConflictType.DRIVER_DOUBLE_BOOKING,
                    message=f"Driver {driver_id} is booked more than once at this time",
                    conflicting_slot_ids=clashing,
                    driver_id=driver_id,
                ))

        for vehicle_id in sorted(vehicles):
            clashing = [
                s.id for s in siblings
                if any(va.vehicle_id == vehicle_id for va in s.vehicle_assignments)
            ]
            if clashing:
                conflicts.append(ConflictDetail(
                    type=ConflictType.VEHICLE_DOUBLE_BOOKING,
                    message=f"Vehicle {vehicle_id} is booked in another slot at this time",
                    conflicting_slot_ids=clashing,
                    vehicle_id=vehicle_id,
                ))

        return conflicts

    def conflict_labels(self, slot: models.ScheduleSlot) -> List[ConflictType]:
        labels: List[ConflictType] = []
        for detail in self.detect_conflicts(slot):
            if detail.type not in labels:
                labels.append(detail.type)
        return labels

    def validate_slot_conflicts(self, slot_id: str) -> List[ConflictType]:
        """Conflict labels of an existing slot (empty list when clean)."""
        slot = crud.get_slot(self.db, slot_id)
        if slot is None:
            raise NotFoundError(f"Schedule slot {slot_id} not found")
        return self.conflict_labels(slot)
