"""
Seating children in the vehicles of a schedule slot.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from db import crud, models, schemas
from models.schedule import ChangeType
from services.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from services.notification_service import NotificationService
from services.schedule_slot_service import ScheduleSlotService
from services.timezone_utils import utcnow

logger = logging.getLogger(__name__)


class ChildAssignmentService:
    def __init__(
        self,
        db: Session,
        now: Callable[[], datetime] = utcnow,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.slots = ScheduleSlotService(db, now=now, notifications=notifications)

    def _get_own_child(self, child_id: str, user_id: str) -> models.Child:
        child = crud.get_child(self.db, child_id)
        if child is None:
            raise NotFoundError(f"Child {child_id} not found")
        if child.family_id != crud.get_user_family_id(self.db, user_id):
            raise PermissionError("Child does not belong to your family")
        return child

    def assign_child_to_slot(
        self, slot_id: str, child_id: str, vehicle_assignment_id: str, user_id: str
    ) -> schemas.ScheduleSlotResponse:
        """
        Seat a child in one vehicle of a slot.

        Capacity is counted per vehicle under the slot lock, so two parents
        racing for the last seat cannot both get it.
        """
        child = self._get_own_child(child_id, user_id)

        with self.slots.transaction():
            slot = self.slots.lock_slot(slot_id)
            tz_name = self.slots.resolve_timezone(user_id, slot.group)
            self.slots.ensure_not_past(slot.datetime, tz_name)

            if child.family_id not in crud.get_group_family_ids(self.db, slot.group_id):
                raise PermissionError("Your family is not a member of this group")

            vehicle_assignment = crud.find_vehicle_assignment_by_id(self.db, vehicle_assignment_id)
            if vehicle_assignment is None or vehicle_assignment.schedule_slot_id != slot.id:
                raise ValidationError("Vehicle assignment does not belong to this schedule slot")

            if crud.get_child_assignment(self.db, slot.id, child.id) is not None:
                raise ConflictError("Child already assigned to this slot")

            seated = crud.count_vehicle_assignment_children(self.db, vehicle_assignment.id)
            capacity = vehicle_assignment.effective_capacity
            if seated >= capacity:
                raise ConflictError(
                    f"Vehicle {vehicle_assignment.vehicle.name} is at full capacity ({seated}/{capacity})"
                )

            crud.add_child_assignment(self.db, slot.id, child.id, vehicle_assignment.id)
            self.slots.refresh_and_check(slot)
            crud.create_activity_log(
                self.db,
                user_id=user_id,
                action_type="CHILD_ASSIGN",
                action_description=f"Assigned {child.name} to trip",
                entity_type="schedule_slot",
                entity_id=slot.id,
                entity_name=child.name,
            )

        logger.info(f"Child {child_id} assigned to slot {slot_id} (vehicle assignment {vehicle_assignment_id})")
        self.slots.notifications.notify_schedule_slot_change(slot_id, ChangeType.CHILD_ASSIGNED)
        return self.slots.get_details_or_404(slot_id)

    def remove_child_from_slot(self, slot_id: str, child_id: str, user_id: str) -> schemas.ScheduleSlotResponse:
        self._get_own_child(child_id, user_id)
        return self.slots.remove_child_from_slot(slot_id, child_id, user_id=user_id)

    def get_available_children_for_slot(self, slot_id: str, user_id: str) -> List[schemas.ChildSummary]:
        """Children of the caller's family not yet seated in the slot."""
        slot = crud.get_slot(self.db, slot_id)
        if slot is None:
            raise NotFoundError(f"Schedule slot {slot_id} not found")
        family_id = crud.get_user_family_id(self.db, user_id)
        if family_id is None:
            return []
        if family_id not in crud.get_group_family_ids(self.db, slot.group_id):
            raise PermissionError("Your family is not a member of this group")

        assigned = {c.child_id for c in slot.child_assignments}
        return [
            schemas.ChildSummary.model_validate(child)
            for child in crud.list_family_children(self.db, family_id)
            if child.id not in assigned
        ]
