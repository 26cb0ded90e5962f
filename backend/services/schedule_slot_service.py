"""
Schedule slot lifecycle.

A slot moves NONEXISTENT -> EXISTS_WITH_VEHICLE(S) -> NONEXISTENT: it is
created together with its first vehicle and deleted when its last vehicle
assignment is removed.

Every mutation runs in one transaction that starts by locking the slot
row, re-validates under the lock, writes, re-checks slot integrity and
commits. Notifications are dispatched only after the commit.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from db import crud, models, schemas
from models.schedule import ChangeType
from services.errors import (
    InvalidTimezoneError,
    NotFoundError,
    PastDateError,
    PermissionError,
    ValidationError,
)
from services.notification_service import NotificationService
from services.schedule_config_service import ScheduleConfigService
from services.schedule_slot_validation import (
    ScheduleSlotValidationService,
    get_slot_stats,
    linked_child_assignments,
    validate_seat_override,
    validate_slot_integrity,
)
from services.timezone_utils import (
    DateLike,
    format_local_datetime,
    get_date_from_iso_week,
    get_validated_timezone,
    get_zone,
    is_in_past,
    parse_datetime,
    to_db_datetime,
    utcnow,
    week_boundaries,
)

logger = logging.getLogger(__name__)


def slot_to_response(slot: models.ScheduleSlot, conflicts=None) -> schemas.ScheduleSlotResponse:
    """Shape a hydrated slot with capacity and availability."""
    children = linked_child_assignments(slot)
    per_vehicle: Dict[str, int] = {}
    for assignment in children:
        per_vehicle[assignment.vehicle_assignment_id] = per_vehicle.get(assignment.vehicle_assignment_id, 0) + 1

    return schemas.ScheduleSlotResponse(
        id=str(slot.id),
        group_id=str(slot.group_id),
        datetime=parse_datetime(slot.datetime),
        vehicle_assignments=[
            schemas.VehicleAssignmentResponse(
                id=str(va.id),
                vehicle=schemas.VehicleSummary.model_validate(va.vehicle),
                driver=schemas.UserSummary.model_validate(va.driver) if va.driver else None,
                seat_override=va.seat_override,
                effective_capacity=va.effective_capacity,
                child_count=per_vehicle.get(va.id, 0),
            )
            for va in slot.vehicle_assignments
        ],
        child_assignments=[
            schemas.ChildAssignmentResponse(
                child=schemas.ChildSummary.model_validate(c.child),
                vehicle_assignment_id=str(c.vehicle_assignment_id),
                assigned_at=c.assigned_at,
            )
            for c in children
        ],
        conflicts=list(conflicts or []),
        **get_slot_stats(slot),
    )


class ScheduleSlotService:
    """Create, assign and remove operations on schedule slots."""

    def __init__(
        self,
        db: Session,
        now: Callable[[], datetime] = utcnow,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.now = now
        self.notifications = notifications or NotificationService(db)
        self.validation = ScheduleSlotValidationService(db)
        self.config_service = ScheduleConfigService(db, now=now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def resolve_timezone(self, user_id: Optional[str], group: Optional[models.Group]) -> str:
        """Acting user's timezone, else the group's, else UTC."""
        if user_id:
            user = crud.get_user(self.db, user_id)
            if user is not None and user.timezone:
                try:
                    get_zone(user.timezone)
                    return user.timezone
                except InvalidTimezoneError:
                    logger.warning(f"User {user_id} has invalid timezone '{user.timezone}'")
        if group is not None:
            return get_validated_timezone(group.timezone)
        return "UTC"

    def ensure_not_past(self, instant: DateLike, tz_name: str, action: str = "modify") -> None:
        if is_in_past(instant, tz_name, self.now()):
            raise PastDateError(
                f"Cannot {action} trips in the past ({format_local_datetime(instant, tz_name)} in {tz_name})"
            )

    def lock_slot(self, slot_id: str, user_id: Optional[str] = None) -> models.ScheduleSlot:
        """
        Lock the slot's group, then the slot itself.

        With `user_id`, the caller must belong to the slot's group.
        """
        group_id = crud.get_slot_group_id(self.db, slot_id)
        if group_id is None:
            raise NotFoundError(f"Schedule slot {slot_id} not found")
        crud.lock_group(self.db, group_id)
        slot = crud.lock_slot(self.db, slot_id)
        if slot is None:
            raise NotFoundError(f"Schedule slot {slot_id} not found")
        if user_id and not crud.user_has_group_access(self.db, user_id, slot.group_id):
            raise PermissionError("Access denied to this group")
        return slot

    def _get_vehicle(self, vehicle_id: str) -> models.Vehicle:
        vehicle = crud.get_vehicle(self.db, vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        return vehicle

    def _get_vehicle_assignment(self, assignment_id: str) -> models.ScheduleSlotVehicle:
        assignment = crud.find_vehicle_assignment_by_id(self.db, assignment_id)
        if assignment is None:
            raise NotFoundError(f"Vehicle assignment {assignment_id} not found")
        return assignment

    def refresh_and_check(self, slot: models.ScheduleSlot) -> None:
        self.db.expire(slot, ["vehicle_assignments", "child_assignments"])
        validate_slot_integrity(slot)

    def _log(self, user_id: Optional[str], action_type: str, description: str, slot_id: str) -> None:
        if not user_id:
            return
        crud.create_activity_log(
            self.db,
            user_id=user_id,
            action_type=action_type,
            action_description=description,
            entity_type="schedule_slot",
            entity_id=slot_id,
        )

    def get_details_or_404(self, slot_id: str) -> schemas.ScheduleSlotResponse:
        details = self.get_schedule_slot_details(slot_id)
        if details is None:
            raise NotFoundError(f"Schedule slot {slot_id} not found")
        return details

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_slot_with_vehicle(
        self,
        group_id: str,
        slot_datetime: DateLike,
        vehicle_id: str,
        user_id: str,
        driver_id: Optional[str] = None,
        seat_override: Optional[int] = None,
    ) -> schemas.ScheduleSlotResponse:
        """
        Create a slot at `slot_datetime` together with its first vehicle.

        Nothing is persisted when any check fails.
        """
        group = crud.get_group(self.db, group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        if not crud.user_has_group_access(self.db, user_id, group_id):
            raise PermissionError("Access denied to this group")

        instant = parse_datetime(slot_datetime)
        tz_name = self.resolve_timezone(user_id, group)
        self.ensure_not_past(instant, tz_name, action="create")
        self.config_service.validate_schedule_time(group_id, instant)
        validate_seat_override(seat_override)
        vehicle = self._get_vehicle(vehicle_id)

        with self.transaction():
            crud.lock_group(self.db, group_id)
            slot = crud.create_slot(self.db, group_id, to_db_datetime(instant))
            self.validation.validate_vehicle_availability(slot, vehicle.id, tz_name)
            self.validation.validate_driver_availability(slot, driver_id, tz_name)
            crud.add_vehicle_assignment(self.db, slot.id, vehicle.id, driver_id, seat_override)
            self.refresh_and_check(slot)
            self._log(user_id, "SCHEDULE_SLOT_CREATE", f"Created trip with {vehicle.name}", slot.id)
            slot_id = slot.id

        logger.info(f"Created schedule slot {slot_id} in group {group_id} at {instant.isoformat()}")
        self.notifications.notify_schedule_slot_change(slot_id, ChangeType.SLOT_CREATED)
        return self.get_details_or_404(slot_id)

    def assign_vehicle_to_slot(
        self,
        slot_id: str,
        vehicle_id: str,
        driver_id: Optional[str] = None,
        seat_override: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> schemas.ScheduleSlotResponse:
        validate_seat_override(seat_override)

        with self.transaction():
            slot = self.lock_slot(slot_id, user_id)
            tz_name = self.resolve_timezone(user_id, slot.group)
            self.ensure_not_past(slot.datetime, tz_name)
            vehicle = self._get_vehicle(vehicle_id)
            self.validation.validate_vehicle_availability(slot, vehicle.id, tz_name)
            self.validation.validate_driver_availability(slot, driver_id, tz_name)
            crud.add_vehicle_assignment(self.db, slot.id, vehicle.id, driver_id, seat_override)
            self.refresh_and_check(slot)
            self._log(user_id, "VEHICLE_ASSIGN", f"Assigned {vehicle.name} to trip", slot.id)

        logger.info(f"Vehicle {vehicle_id} assigned to slot {slot_id}")
        self.notifications.notify_schedule_slot_change(slot_id, ChangeType.VEHICLE_ASSIGNED)
        return self.get_details_or_404(slot_id)

    def remove_vehicle_from_slot(
        self, slot_id: str, vehicle_id: str, user_id: Optional[str] = None
    ) -> schemas.VehicleRemovalResponse:
        """
        Remove a vehicle (and the children seated in it) from a slot.

        The slot itself is deleted when this was its last vehicle.
        """
        with self.transaction():
            slot = self.lock_slot(slot_id, user_id)
            tz_name = self.resolve_timezone(user_id, slot.group)
            self.ensure_not_past(slot.datetime, tz_name)

            assignment = crud.get_vehicle_assignment(self.db, slot.id, vehicle_id)
            if assignment is None:
                raise NotFoundError("Vehicle is not assigned to this schedule slot")

            # Snapshot while the vehicle is still attached.
            payload = self.notifications.snapshot(slot.id, ChangeType.VEHICLE_REMOVED)
            vehicle_name = assignment.vehicle.name if assignment.vehicle else str(vehicle_id)

            slot_deleted = crud.remove_vehicle_from_slot(self.db, assignment)
            if not slot_deleted:
                self.refresh_and_check(slot)
            self._log(user_id, "VEHICLE_REMOVE", f"Removed {vehicle_name} from trip", slot_id)

        logger.info(f"Vehicle {vehicle_id} removed from slot {slot_id} (slot deleted: {slot_deleted})")
        if payload is not None:
            payload["slot_deleted"] = slot_deleted
        self.notifications.dispatch(payload)

        if slot_deleted:
            return schemas.VehicleRemovalResponse(slot_deleted=True, slot=None)
        return schemas.VehicleRemovalResponse(slot_deleted=False, slot=self.get_details_or_404(slot_id))

    def remove_child_from_slot(
        self, slot_id: str, child_id: str, user_id: Optional[str] = None
    ) -> schemas.ScheduleSlotResponse:
        with self.transaction():
            slot = self.lock_slot(slot_id, user_id)
            tz_name = self.resolve_timezone(user_id, slot.group)
            self.ensure_not_past(slot.datetime, tz_name)

            assignment = crud.get_child_assignment(self.db, slot.id, child_id)
            if assignment is None:
                raise NotFoundError("Child is not assigned to this schedule slot")
            child_name = assignment.child.name if assignment.child else str(child_id)

            crud.remove_child_from_slot(self.db, assignment)
            self.refresh_and_check(slot)
            self._log(user_id, "CHILD_REMOVE", f"Removed {child_name} from trip", slot.id)

        logger.info(f"Child {child_id} removed from slot {slot_id}")
        self.notifications.notify_schedule_slot_change(slot_id, ChangeType.CHILD_REMOVED)
        return self.get_details_or_404(slot_id)

    def update_vehicle_driver(
        self, vehicle_assignment_id: str, driver_id: Optional[str], user_id: Optional[str] = None
    ) -> schemas.ScheduleSlotResponse:
        assignment = self._get_vehicle_assignment(vehicle_assignment_id)

        with self.transaction():
            slot = self.lock_slot(assignment.schedule_slot_id, user_id)
            tz_name = self.resolve_timezone(user_id, slot.group)
            self.ensure_not_past(slot.datetime, tz_name)
            self.validation.validate_driver_availability(
                slot, driver_id, tz_name, exclude_assignment_id=assignment.id
            )
            crud.update_vehicle_driver(self.db, assignment, driver_id)
            slot_id = slot.id

        logger.info(f"Driver of vehicle assignment {vehicle_assignment_id} set to {driver_id}")
        if driver_id:
            self.notifications.notify_schedule_slot_change(slot_id, ChangeType.DRIVER_ASSIGNED)
        return self.get_details_or_404(slot_id)

    def update_seat_override(
        self, vehicle_assignment_id: str, seat_override: Optional[int], user_id: Optional[str] = None
    ) -> schemas.ScheduleSlotResponse:
        validate_seat_override(seat_override)
        assignment = self._get_vehicle_assignment(vehicle_assignment_id)

        with self.transaction():
            slot = self.lock_slot(assignment.schedule_slot_id, user_id)
            tz_name = self.resolve_timezone(user_id, slot.group)
            self.ensure_not_past(slot.datetime, tz_name)
            crud.update_seat_override(self.db, assignment, seat_override)
            self.refresh_and_check(slot)
            slot_id = slot.id

        logger.info(f"Seat override of vehicle assignment {vehicle_assignment_id} set to {seat_override}")
        self.notifications.notify_schedule_slot_change(slot_id, ChangeType.SEAT_OVERRIDE_UPDATED)
        return self.get_details_or_404(slot_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_schedule_slot_details(self, slot_id: str) -> Optional[schemas.ScheduleSlotResponse]:
        slot = crud.get_slot(self.db, slot_id)
        if slot is None:
            return None
        return slot_to_response(slot, self.validation.conflict_labels(slot))

    def validate_slot_conflicts(self, slot_id: str):
        return self.validation.validate_slot_conflicts(slot_id)

    def _group_for_read(self, group_id: str, user_id: Optional[str]) -> models.Group:
        group = crud.get_group(self.db, group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        if user_id and not crud.user_has_group_access(self.db, user_id, group_id):
            raise PermissionError("Access denied to this group")
        return group

    def _schedule_between(self, group: models.Group, start: datetime, end: datetime) -> schemas.ScheduleResponse:
        slots = crud.get_weekly_schedule_by_date_range(
            self.db, group.id, to_db_datetime(start), to_db_datetime(end)
        )
        return schemas.ScheduleResponse(
            group_id=str(group.id),
            start_date=start,
            end_date=end,
            schedule_slots=[slot_to_response(s, self.validation.conflict_labels(s)) for s in slots],
        )

    def get_schedule(
        self,
        group_id: str,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        user_id: Optional[str] = None,
    ) -> schemas.ScheduleResponse:
        """
        Slots of a group between two instants.

        Missing bounds default to the current week in the group's timezone.
        """
        group = self._group_for_read(group_id, user_id)
        tz_name = get_validated_timezone(group.timezone)

        if start_date is None and end_date is None:
            start, end = week_boundaries(self.now(), tz_name)
        else:
            start = (
                parse_datetime(start_date) if start_date is not None
                else week_boundaries(end_date, tz_name).week_start
            )
            end = parse_datetime(end_date) if end_date is not None else week_boundaries(start, tz_name).week_end

        if end < start:
            raise ValidationError("end_date must not be before start_date")
        return self._schedule_between(group, start, end)

    def get_schedule_by_week(
        self, group_id: str, year: int, week: int, user_id: Optional[str] = None
    ) -> schemas.ScheduleResponse:
        group = self._group_for_read(group_id, user_id)
        tz_name = get_validated_timezone(group.timezone)
        start = get_date_from_iso_week(year, week, tz_name)
        end = week_boundaries(start, tz_name).week_end
        return self._schedule_between(group, start, end)

    def find_conflicting_slots_for_parent(
        self, user_id: str, slot_datetime: DateLike
    ) -> List[schemas.ScheduleSlotResponse]:
        instant = parse_datetime(slot_datetime)
        slots = crud.find_conflicting_slots_for_parent(self.db, user_id, to_db_datetime(instant))
        return [slot_to_response(s) for s in slots]
