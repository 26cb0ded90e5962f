"""
Group schedule configuration API.
"""

from typing import Dict, List

from fastapi import APIRouter, Body, Depends, Query

from api.deps import get_current_user, get_schedule_config_service
from db import models, schemas
from services.schedule_config_service import ScheduleConfigService, get_default_schedule_hours

router = APIRouter(prefix="/api", tags=["schedule-config"])


@router.get("/schedule-config/default", response_model=Dict[str, List[str]])
def get_default_config() -> Dict[str, List[str]]:
    """Default hours seeded into new groups."""
    return get_default_schedule_hours()


@router.get("/groups/{group_id}/schedule-config", response_model=schemas.ScheduleConfigResponse)
def get_group_schedule_config(
    group_id: str,
    user: models.User = Depends(get_current_user),
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> schemas.ScheduleConfigResponse:
    return service.get_group_schedule_config(group_id, user.id)


@router.get("/groups/{group_id}/schedule-config/time-slots", response_model=schemas.TimeSlotsResponse)
def get_group_time_slots(
    group_id: str,
    weekday: str = Query(..., description="MONDAY..SUNDAY"),
    user: models.User = Depends(get_current_user),
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> schemas.TimeSlotsResponse:
    return service.get_group_time_slots(group_id, weekday, user.id)


@router.put("/groups/{group_id}/schedule-config", response_model=schemas.ScheduleConfigResponse)
def update_group_schedule_config(
    group_id: str,
    payload: schemas.ScheduleConfigUpdate = Body(...),
    user: models.User = Depends(get_current_user),
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> schemas.ScheduleConfigResponse:
    """Replace the weekly hours. Admins only; blocked while removed times still have bookings."""
    return service.update_group_schedule_config(group_id, payload.schedule_hours, user.id)


@router.post("/groups/{group_id}/schedule-config/reset", response_model=schemas.ScheduleConfigResponse)
def reset_group_schedule_config(
    group_id: str,
    user: models.User = Depends(get_current_user),
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> schemas.ScheduleConfigResponse:
    return service.reset_group_schedule_config(group_id, user.id)
