"""
Schedule and schedule slot API.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from api.deps import get_child_assignment_service, get_current_user, get_schedule_slot_service
from db import models, schemas
from models.schedule import ConflictType
from services.child_assignment_service import ChildAssignmentService
from services.schedule_slot_service import ScheduleSlotService

router = APIRouter(prefix="/api", tags=["schedule"])


# =============================================================================
# Schedule reads
# =============================================================================

@router.get("/groups/{group_id}/schedule", response_model=schemas.ScheduleResponse)
def get_schedule(
    group_id: str,
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleResponse:
    """Slots in range; defaults to the current week in the group's timezone."""
    return service.get_schedule(group_id, start_date, end_date, user_id=user.id)


@router.get("/groups/{group_id}/schedule/week/{year}/{week}", response_model=schemas.ScheduleResponse)
def get_schedule_by_week(
    group_id: str,
    year: int,
    week: int,
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleResponse:
    return service.get_schedule_by_week(group_id, year, week, user_id=user.id)


@router.get("/schedule-slots/{slot_id}", response_model=schemas.ScheduleSlotResponse)
def get_schedule_slot(
    slot_id: str,
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleSlotResponse:
    details = service.get_schedule_slot_details(slot_id)
    if details is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule slot not found")
    return details


@router.get("/schedule-slots/{slot_id}/conflicts", response_model=List[ConflictType])
def get_schedule_slot_conflicts(
    slot_id: str,
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> List[ConflictType]:
    return service.validate_slot_conflicts(slot_id)


# =============================================================================
# Slot and vehicle mutations
# =============================================================================

@router.post(
    "/groups/{group_id}/schedule-slots",
    response_model=schemas.ScheduleSlotResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule_slot(
    group_id: str,
    payload: schemas.SlotCreateRequest = Body(...),
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleSlotResponse:
    return service.create_slot_with_vehicle(
        group_id,
        payload.datetime,
        payload.vehicle_id,
        user.id,
        driver_id=payload.driver_id,
        seat_override=payload.seat_override,
    )


@router.post("/schedule-slots/{slot_id}/vehicles", response_model=schemas.ScheduleSlotResponse)
def assign_vehicle(
    slot_id: str,
    payload: schemas.VehicleAssignRequest = Body(...),
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleSlotResponse:
    return service.assign_vehicle_to_slot(
        slot_id,
        payload.vehicle_id,
        driver_id=payload.driver_id,
        seat_override=payload.seat_override,
        user_id=user.id,
    )


@router.delete("/schedule-slots/{slot_id}/vehicles/{vehicle_id}", response_model=schemas.VehicleRemovalResponse)
def remove_vehicle(
    slot_id: str,
    vehicle_id: str,
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.VehicleRemovalResponse:
    return service.remove_vehicle_from_slot(slot_id, vehicle_id, user_id=user.id)


@router.patch("/vehicle-assignments/{assignment_id}/driver", response_model=schemas.ScheduleSlotResponse)
def update_driver(
    assignment_id: str,
    payload: schemas.DriverUpdateRequest = Body(...),
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleSlotResponse:
    return service.update_vehicle_driver(assignment_id, payload.driver_id, user_id=user.id)


@router.patch("/vehicle-assignments/{assignment_id}/seat-override", response_model=schemas.ScheduleSlotResponse)
def update_seat_override(
    assignment_id: str,
    payload: schemas.SeatOverrideUpdateRequest = Body(...),
    user: models.User = Depends(get_current_user),
    service: ScheduleSlotService = Depends(get_schedule_slot_service),
) -> schemas.ScheduleSlotResponse:
    return service.update_seat_override(assignment_id, payload.seat_override, user_id=user.id)


# =============================================================================
# Children
# =============================================================================

@router.post("/schedule-slots/{slot_id}/children", response_model=schemas.ScheduleSlotResponse)
def assign_child(
    slot_id: str,
    payload: schemas.ChildAssignRequest = Body(...),
    user: models.User = Depends(get_current_user),
    service: ChildAssignmentService = Depends(get_child_assignment_service),
) -> schemas.ScheduleSlotResponse:
    return service.assign_child_to_slot(slot_id, payload.child_id, payload.vehicle_assignment_id, user.id)


@router.delete("/schedule-slots/{slot_id}/children/{child_id}", response_model=schemas.ScheduleSlotResponse)
def remove_child(
    slot_id: str,
    child_id: str,
    user: models.User = Depends(get_current_user),
    service: ChildAssignmentService = Depends(get_child_assignment_service),
) -> schemas.ScheduleSlotResponse:
    return service.remove_child_from_slot(slot_id, child_id, user.id)


@router.get("/schedule-slots/{slot_id}/available-children", response_model=List[schemas.ChildSummary])
def get_available_children(
    slot_id: str,
    user: models.User = Depends(get_current_user),
    service: ChildAssignmentService = Depends(get_child_assignment_service),
) -> List[schemas.ChildSummary]:
    return service.get_available_children_for_slot(slot_id, user.id)
