"""
Shared FastAPI dependencies.

Authentication is handled upstream; the gateway forwards the caller's
user id in the X-User-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from db import crud, models
from db.database import get_db
from services.child_assignment_service import ChildAssignmentService
from services.dashboard_service import DashboardService
from services.schedule_config_service import ScheduleConfigService
from services.schedule_slot_service import ScheduleSlotService


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    user = crud.get_user(db, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def get_schedule_config_service(db: Session = Depends(get_db)) -> ScheduleConfigService:
    return ScheduleConfigService(db)


def get_schedule_slot_service(db: Session = Depends(get_db)) -> ScheduleSlotService:
    return ScheduleSlotService(db)


def get_child_assignment_service(db: Session = Depends(get_db)) -> ChildAssignmentService:
    return ChildAssignmentService(db)


def get_dashboard_service(db: Session = Depends(get_db)) -> DashboardService:
    return DashboardService(db)
