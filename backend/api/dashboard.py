"""
Dashboard API.
"""

from typing import List

from fastapi import APIRouter, Depends

from api.deps import get_current_user, get_dashboard_service
from db import models
from models.dashboard import ActivityItem, DashboardOverview, DashboardStats, Trip
from services.dashboard_service import DashboardService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardOverview)
def get_dashboard(
    user: models.User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardOverview:
    """All sections; each one reports its own availability."""
    return service.get_dashboard(user.id)


@router.get("/stats", response_model=DashboardStats)
def get_stats(
    user: models.User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardStats:
    return service.calculate_user_stats(user.id)


@router.get("/today-trips", response_model=List[Trip])
def get_today_trips(
    user: models.User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> List[Trip]:
    return service.get_today_trips(user.id)


@router.get("/weekly-trips", response_model=List[Trip])
def get_weekly_trips(
    user: models.User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> List[Trip]:
    return service.get_weekly_trips(user.id)


@router.get("/recent-activity", response_model=List[ActivityItem])
def get_recent_activity(
    user: models.User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> List[ActivityItem]:
    return service.get_recent_activity(user.id)
