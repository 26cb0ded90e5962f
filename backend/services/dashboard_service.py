"""
Read-only dashboard aggregation for one user.

Scope: groups the user's family owns or belongs to, slots the user drives,
and slots where the family's children are seated.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from config import config
from db import crud, models
from models.dashboard import (
    ActivityItem,
    DashboardOverview,
    DashboardStats,
    SectionResult,
    Trend,
    Trip,
    TripChild,
    TripVehicle,
)
from services.errors import NotFoundError
from services.timezone_utils import as_utc, to_db_datetime, utcnow, week_boundaries

logger = logging.getLogger(__name__)

ENTITY_TYPES = {
    "group": "group",
    "vehicle": "vehicle",
    "child": "child",
    "schedule_slot": "schedule",
    "schedule": "schedule",
}


def format_relative_time(moment: datetime, now: datetime) -> str:
    seconds = int((as_utc(now) - as_utc(moment)).total_seconds())
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def activity_entity_type(entry: models.ActivityLog) -> str:
    if entry.entity_type in ENTITY_TYPES:
        return ENTITY_TYPES[entry.entity_type]
    action = (entry.action_type or "").upper()
    for marker, label in (("GROUP", "group"), ("VEHICLE", "vehicle"), ("CHILD", "child")):
        if marker in action:
            return label
    return "schedule"


class DashboardService:
    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow):
        self.db = db
        self.now = now

    def _require_user(self, user_id: str) -> models.User:
        user = crud.get_user(self.db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def _count_week_trips(self, user_id: str) -> int:
        week = week_boundaries(self.now(), "UTC")
        slots = crud.get_user_slots_in_range(
            self.db, user_id, to_db_datetime(week.week_start), to_db_datetime(week.week_end)
        )
        return len(slots)

    def calculate_user_stats(self, user_id: str) -> DashboardStats:
        """
        Counters for the dashboard header.

        Group/children/vehicle counts propagate their errors; the weekly
        trip count degrades to 0.
        """
        self._require_user(user_id)
        family_id = crud.get_user_family_id(self.db, user_id)
        if family_id is None:
            return DashboardStats()

        try:
            this_week_trips = self._count_week_trips(user_id)
        except Exception as e:
            logger.warning(f"Failed to count weekly trips for user {user_id}: {e}")
            this_week_trips = 0

        return DashboardStats(
            groups=len(crud.get_family_group_ids(self.db, family_id)),
            children=crud.count_family_children(self.db, family_id),
            vehicles=crud.count_family_vehicles(self.db, family_id),
            this_week_trips=this_week_trips,
            trends={
                "groups": Trend(period="current").model_dump(),
                "children": Trend(period="current").model_dump(),
                "vehicles": Trend(period="current").model_dump(),
                "this_week_trips": Trend(period="this week").model_dump(),
            },
        )

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    def _to_trip(self, slot: models.ScheduleSlot, family_id: Optional[str]) -> Trip:
        moment = as_utc(slot.datetime)
        is_morning = moment.hour < 12
        group_name = slot.group.name if slot.group else None
        drivers = [va.driver.name for va in slot.vehicle_assignments if va.driver is not None]
        return Trip(
            id=str(slot.id),
            group_id=str(slot.group_id),
            group_name=group_name,
            datetime=moment,
            date=moment.strftime("%Y-%m-%d"),
            time=moment.strftime("%H:%M"),
            type="pickup" if is_morning else "dropoff",
            destination=(group_name or "School") if is_morning else "Home",
            vehicles=[
                TripVehicle(id=str(va.vehicle_id), name=va.vehicle.name, capacity=va.effective_capacity)
                for va in slot.vehicle_assignments
                if va.vehicle is not None
            ],
            driver=drivers[0] if drivers else None,
            children=[
                TripChild(id=str(c.child.id), name=c.child.name)
                for c in slot.child_assignments
                if c.child is not None and c.child.family_id == family_id
            ],
        )

    def _trips_between(self, user_id: str, start: datetime, end: datetime) -> List[Trip]:
        self._require_user(user_id)
        family_id = crud.get_user_family_id(self.db, user_id)
        slots = crud.get_user_slots_in_range(self.db, user_id, to_db_datetime(start), to_db_datetime(end))
        trips = [self._to_trip(slot, family_id) for slot in slots]
        return sorted(trips, key=lambda t: (t.date, t.time))

    def get_today_trips(self, user_id: str) -> List[Trip]:
        today = as_utc(self.now()).date()
        start = datetime.combine(today, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1) - timedelta(milliseconds=1)
        return self._trips_between(user_id, start, end)

    def get_weekly_trips(self, user_id: str) -> List[Trip]:
        week = week_boundaries(self.now(), "UTC")
        return self._trips_between(user_id, week.week_start, week.week_end)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def get_recent_activity(self, user_id: str, limit: Optional[int] = None) -> List[ActivityItem]:
        self._require_user(user_id)
        now = self.now()
        entries = crud.get_recent_activity(self.db, user_id, limit or config.DASHBOARD_ACTIVITY_LIMIT)
        return [
            ActivityItem(
                id=str(entry.id),
                action=entry.action_description,
                action_type=entry.action_type,
                time=format_relative_time(entry.created_at, now),
                timestamp=as_utc(entry.created_at),
                type=activity_entity_type(entry),
                entity_id=entry.entity_id,
                entity_name=entry.entity_name,
            )
            for entry in entries
        ]

    # ------------------------------------------------------------------
    # Whole dashboard
    # ------------------------------------------------------------------

    def _section(self, name: str, loader: Callable[[], object]) -> SectionResult:
        try:
            return SectionResult.ok(loader())
        except Exception as e:
            logger.warning(f"Dashboard section '{name}' unavailable: {e}")
            self.db.rollback()
            return SectionResult.unavailable(str(e))

    def get_dashboard(self, user_id: str) -> DashboardOverview:
        """Every section is loaded on its own; failures become placeholders."""
        return DashboardOverview(
            stats=self._section("stats", lambda: self.calculate_user_stats(user_id)),
            today_trips=self._section("today_trips", lambda: self.get_today_trips(user_id)),
            weekly_trips=self._section("weekly_trips", lambda: self.get_weekly_trips(user_id)),
            recent_activity=self._section("recent_activity", lambda: self.get_recent_activity(user_id)),
        )
