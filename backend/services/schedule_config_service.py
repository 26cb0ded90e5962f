"""
Group schedule configuration.

A group's configuration maps each weekday (MONDAY..SUNDAY) to the local
times (HH:MM, group timezone) at which schedule slots may be created.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from db import crud, models, schemas
from models.schedule import (
    DEFAULT_SCHEDULE_HOURS,
    MAX_TIMES_PER_WEEKDAY,
    MIN_INTERVAL_MINUTES,
)
from services.errors import (
    NoConfigError,
    NotConfiguredError,
    NotFoundError,
    PermissionError,
    SlotsInUseError,
    ValidationError,
)
from services.timezone_utils import (
    TIME_PATTERN,
    WEEKDAYS,
    get_time_in_timezone,
    get_validated_timezone,
    get_weekday_in_timezone,
    time_to_minutes,
    to_db_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)


def get_default_schedule_hours() -> Dict[str, List[str]]:
    """Default weekly hours used to seed new groups (Monday to Friday)."""
    return copy.deepcopy(DEFAULT_SCHEDULE_HOURS)


def validate_operating_hours(operating_hours: Optional[Dict[str, str]]) -> None:
    if not operating_hours:
        return
    start = operating_hours.get("start_hour")
    end = operating_hours.get("end_hour")
    for label, value in (("start_hour", start), ("end_hour", end)):
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            raise ValidationError(f"Invalid operating hours {label}: {value}. Expected HH:MM")
    if time_to_minutes(start) >= time_to_minutes(end):
        raise ValidationError(f"Operating hours start ({start}) must be before end ({end})")


def validate_schedule_hours(
    schedule_hours: Dict[str, List[str]],
    operating_hours: Optional[Dict[str, str]] = None,
) -> Dict[str, List[str]]:
    """
    Validate a weekday -> times mapping and return it with sorted times.

    Raises:
        ValidationError: naming the offending weekday and time
    """
    if not isinstance(schedule_hours, dict):
        raise ValidationError("Schedule hours must be an object keyed by weekday")

    validate_operating_hours(operating_hours)
    normalized: Dict[str, List[str]] = {}

    for weekday, times in schedule_hours.items():
        if weekday not in WEEKDAYS:
            raise ValidationError(f"Invalid weekday: {weekday}. Expected one of {', '.join(WEEKDAYS)}")
        if not isinstance(times, list):
            raise ValidationError(f"Time slots for {weekday} must be a list")
        if len(times) > MAX_TIMES_PER_WEEKDAY:
            raise ValidationError(
                f"Maximum {MAX_TIMES_PER_WEEKDAY} time slots allowed per weekday ({weekday} has {len(times)})"
            )

        for value in times:
            if not isinstance(value, str) or not TIME_PATTERN.match(value):
                raise ValidationError(f"Invalid time format on {weekday}: {value}. Expected HH:MM")

        seen, duplicates = set(), set()
        for value in times:
            if value in seen:
                duplicates.add(value)
            seen.add(value)
        if duplicates:
            raise ValidationError(f"Duplicate time slots found for {weekday}: {', '.join(sorted(duplicates))}")

        ordered = sorted(times, key=time_to_minutes)
        for previous, current in zip(ordered, ordered[1:]):
            if time_to_minutes(current) - time_to_minutes(previous) < MIN_INTERVAL_MINUTES:
                raise ValidationError(
                    f"Minimum {MIN_INTERVAL_MINUTES}-minute interval required between time slots "
                    f"({weekday}: {previous} and {current})"
                )

        if operating_hours:
            start = time_to_minutes(operating_hours["start_hour"])
            end = time_to_minutes(operating_hours["end_hour"])
            for value in ordered:
                if not start <= time_to_minutes(value) <= end:
                    raise ValidationError(
                        f"Schedule time {value} on {weekday} is outside operating hours "
                        f"({operating_hours['start_hour']}-{operating_hours['end_hour']})"
                    )

        normalized[weekday] = ordered

    return normalized


class ScheduleConfigService:
    """Reads, validates and updates group schedule configurations."""

    def __init__(self, db: Session, now: Callable[[], datetime] = utcnow):
        self.db = db
        self.now = now

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_group(self, group_id: str) -> models.Group:
        group = crud.get_group(self.db, group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def _require_access(self, group_id: str, user_id: str) -> models.Group:
        group = self._get_group(group_id)
        if not crud.user_has_group_access(self.db, user_id, group_id):
            raise PermissionError("Access denied to this group")
        return group

    def _require_admin(self, group_id: str, user_id: str) -> models.Group:
        group = self._get_group(group_id)
        if not crud.is_group_admin(self.db, user_id, group_id):
            raise PermissionError("Only group administrators can modify schedule configuration")
        return group

    def _to_response(self, group: models.Group, config_row: models.GroupScheduleConfig) -> schemas.ScheduleConfigResponse:
        hours = dict(config_row.schedule_hours or {})
        return schemas.ScheduleConfigResponse(
            id=str(config_row.id),
            group_id=str(group.id),
            group_name=group.name,
            schedule_hours=hours,
            is_default=hours == DEFAULT_SCHEDULE_HOURS,
            created_at=config_row.created_at,
            updated_at=config_row.updated_at,
        )

    def get_group_schedule_config(self, group_id: str, user_id: str) -> schemas.ScheduleConfigResponse:
        group = self._require_access(group_id, user_id)
        config_row = crud.get_schedule_config(self.db, group_id)
        if config_row is None:
            raise NotFoundError(
                "Group schedule configuration not found. "
                "Please contact an administrator to configure schedule slots."
            )
        return self._to_response(group, config_row)

    def get_group_time_slots(self, group_id: str, weekday: str, user_id: str) -> schemas.TimeSlotsResponse:
        weekday = (weekday or "").upper()
        if weekday not in WEEKDAYS:
            raise ValidationError(f"Invalid weekday: {weekday}")
        self._require_access(group_id, user_id)
        config_row = crud.get_schedule_config(self.db, group_id)
        hours = (config_row.schedule_hours or {}) if config_row else {}
        return schemas.TimeSlotsResponse(
            group_id=str(group_id),
            weekday=weekday,
            time_slots=list(hours.get(weekday) or []),
        )

    # ------------------------------------------------------------------
    # Slot time validation
    # ------------------------------------------------------------------

    def validate_schedule_time(self, group_id: str, instant: datetime, timezone: Optional[str] = None) -> None:
        """
        Check that `instant` falls on a configured local time of the group.

        The local weekday and HH:MM are computed in `timezone`, defaulting to
        the group's own timezone.

        Raises:
            NoConfigError: the group has no configuration
            NotConfiguredError: the time is not configured for that weekday
            ValidationError: the time is outside the group's operating hours
        """
        group = self._get_group(group_id)
        config_row = crud.get_schedule_config(self.db, group_id)
        if config_row is None:
            raise NoConfigError(
                "Group has no schedule configuration. "
                "Please contact an administrator to configure schedule slots."
            )

        tz_name = timezone or get_validated_timezone(group.timezone)
        weekday = get_weekday_in_timezone(instant, tz_name)
        local_time = get_time_in_timezone(instant, tz_name)
        allowed = list((config_row.schedule_hours or {}).get(weekday) or [])

        if local_time not in allowed:
            available = ", ".join(allowed) if allowed else "none"
            raise NotConfiguredError(
                f"Time {local_time} is not configured for {weekday} in this group. "
                f"Available times: {available}"
            )

        operating_hours = group.operating_hours
        if operating_hours:
            minutes = time_to_minutes(local_time)
            if not (
                time_to_minutes(operating_hours["start_hour"]) <= minutes
                <= time_to_minutes(operating_hours["end_hour"])
            ):
                raise ValidationError(
                    f"Time {local_time} is outside operating hours "
                    f"({operating_hours['start_hour']}-{operating_hours['end_hour']})"
                )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def _check_slots_in_use(self, group: models.Group, new_hours: Dict[str, List[str]]) -> None:
        tz_name = get_validated_timezone(group.timezone)
        conflicts = []
        for row in crud.get_future_booked_slots(self.db, group.id, to_db_datetime(self.now())):
            slot = row["slot"]
            weekday = get_weekday_in_timezone(slot.datetime, tz_name)
            local_time = get_time_in_timezone(slot.datetime, tz_name)
            if local_time not in (new_hours.get(weekday) or []):
                conflicts.append({
                    "slot_id": str(slot.id),
                    "weekday": weekday,
                    "time": local_time,
                    "child_count": row["child_count"],
                })

        if conflicts:
            parts = [
                f"{c['weekday']} {c['time']} ({c['child_count']} "
                f"{'child' if c['child_count'] == 1 else 'children'} assigned)"
                for c in conflicts
            ]
            raise SlotsInUseError(
                f"Cannot remove time slots with existing bookings: {', '.join(parts)}",
                conflicts=conflicts,
            )

    def _save(
        self,
        group: models.Group,
        hours: Dict[str, List[str]],
        user_id: str,
        action_type: str,
        description: str,
    ) -> schemas.ScheduleConfigResponse:
        try:
            config_row = crud.upsert_schedule_config(self.db, group.id, hours)
            crud.create_activity_log(
                self.db,
                user_id=user_id,
                action_type=action_type,
                action_description=description,
                entity_type="group",
                entity_id=group.id,
                entity_name=group.name,
                metadata={"schedule_hours": hours},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(config_row)
        logger.info(f"Schedule config for group {group.id} saved by user {user_id} ({action_type})")
        return self._to_response(group, config_row)

    def update_group_schedule_config(
        self, group_id: str, schedule_hours: Dict[str, List[str]], user_id: str
    ) -> schemas.ScheduleConfigResponse:
        group = self._require_admin(group_id, user_id)
        hours = validate_schedule_hours(schedule_hours, group.operating_hours)
        self._check_slots_in_use(group, hours)
        return self._save(
            group,
            hours,
            user_id,
            "GROUP_SCHEDULE_CONFIG_UPDATE",
            f"Updated schedule configuration for group {group.name}",
        )

    def reset_group_schedule_config(self, group_id: str, user_id: str) -> schemas.ScheduleConfigResponse:
        group = self._require_admin(group_id, user_id)
        hours = get_default_schedule_hours()
        self._check_slots_in_use(group, hours)
        return self._save(
            group,
            hours,
            user_id,
            "GROUP_SCHEDULE_CONFIG_RESET",
            f"Reset schedule configuration to defaults for group {group.name}",
        )

    def initialize_default_configs(self) -> int:
        """Create default configs for every group that has none."""
        groups = crud.list_groups_without_config(self.db)
        try:
            for group in groups:
                crud.upsert_schedule_config(self.db, group.id, get_default_schedule_hours())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if groups:
            logger.info(f"Initialized default schedule config for {len(groups)} groups")
        return len(groups)
