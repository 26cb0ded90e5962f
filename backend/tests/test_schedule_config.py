"""
Tests for group schedule configuration.

Validates:
- Weekday/time validation rules and their messages
- Access control (members read, admins write)
- Slot time validation against the configuration
- Updates blocked by booked future slots
- Reset and default initialization
"""

import pytest

from db import crud, models
from services.child_assignment_service import ChildAssignmentService
from services.errors import (
    NoConfigError,
    NotConfiguredError,
    NotFoundError,
    PermissionError,
    SlotsInUseError,
    ValidationError,
)
from services.schedule_config_service import (
    ScheduleConfigService,
    get_default_schedule_hours,
    validate_schedule_hours,
)
from services.schedule_slot_service import ScheduleSlotService
from services.timezone_utils import parse_datetime


@pytest.fixture
def service(db_session, clock):
    return ScheduleConfigService(db_session, now=clock)


def _book_monday_seven(db_session, clock, notifications, seed, child_count=2):
    """Slot at Monday 07:00 Paris with `child_count` Martin children seated."""
    slots = ScheduleSlotService(db_session, now=clock, notifications=notifications)
    slot = slots.create_slot_with_vehicle(
        seed.group.id, "2050-01-10T06:00:00Z", seed.minivan.id, seed.alice.id
    )
    children = ChildAssignmentService(db_session, now=clock, notifications=notifications)
    for child in seed.children[:child_count]:
        children.assign_child_to_slot(slot.id, child.id, slot.vehicle_assignments[0].id, seed.alice.id)
    return slot


# ============================================================
# TESTS - VALIDATION RULES
# ============================================================

class TestValidateScheduleHours:

    def test_sorts_times(self):
        hours = validate_schedule_hours({"MONDAY": ["08:00", "07:00"]})
        assert hours == {"MONDAY": ["07:00", "08:00"]}

    def test_weekend_keys_allowed(self):
        hours = validate_schedule_hours({"SATURDAY": ["09:00"], "SUNDAY": []})
        assert hours["SATURDAY"] == ["09:00"]
        assert hours["SUNDAY"] == []

    def test_invalid_weekday(self):
        with pytest.raises(ValidationError, match="Invalid weekday: MON"):
            validate_schedule_hours({"MON": ["07:00"]})

    def test_invalid_time_format(self):
        with pytest.raises(ValidationError, match="Invalid time format on MONDAY: 7:00"):
            validate_schedule_hours({"MONDAY": ["7:00"]})

    def test_duplicates(self):
        with pytest.raises(ValidationError, match="Duplicate time slots found for MONDAY: 07:00"):
            validate_schedule_hours({"MONDAY": ["07:00", "08:00", "07:00"]})

    def test_minimum_interval(self):
        with pytest.raises(ValidationError, match=r"\(TUESDAY: 07:00 and 07:10\)"):
            validate_schedule_hours({"TUESDAY": ["07:10", "07:00"]})

    def test_fifteen_minutes_is_enough(self):
        assert validate_schedule_hours({"MONDAY": ["07:00", "07:15"]})["MONDAY"] == ["07:00", "07:15"]

    def test_too_many_times(self):
        times = [f"{h:02d}:00" for h in range(21)]
        with pytest.raises(ValidationError, match="Maximum 20 time slots allowed per weekday"):
            validate_schedule_hours({"MONDAY": times})

    def test_operating_hours_window(self):
        window = {"start_hour": "07:00", "end_hour": "18:00"}
        assert validate_schedule_hours({"MONDAY": ["07:00", "18:00"]}, window)
        with pytest.raises(ValidationError, match="outside operating hours"):
            validate_schedule_hours({"MONDAY": ["19:00"]}, window)

    def test_default_hours_are_weekdays(self):
        defaults = get_default_schedule_hours()
        assert sorted(defaults) == ["FRIDAY", "MONDAY", "THURSDAY", "TUESDAY", "WEDNESDAY"]
        defaults["MONDAY"].append("23:00")
        assert "23:00" not in get_default_schedule_hours()["MONDAY"]


# ============================================================
# TESTS - READS AND ACCESS
# ============================================================

class TestReadConfig:

    def test_member_reads_config(self, service, seed):
        config = service.get_group_schedule_config(seed.group.id, seed.carol.id)
        assert config.group_name == "Ecole Voltaire"
        assert config.is_default is True
        assert "07:30" in config.schedule_hours["MONDAY"]

    def test_outsider_is_denied(self, service, seed):
        with pytest.raises(PermissionError):
            service.get_group_schedule_config(seed.group.id, seed.dave.id)

    def test_unknown_group(self, service, seed):
        with pytest.raises(NotFoundError):
            service.get_group_schedule_config("missing-group", seed.alice.id)

    def test_time_slots_for_weekday(self, service, seed):
        slots = service.get_group_time_slots(seed.group.id, "monday", seed.bob.id)
        assert slots.weekday == "MONDAY"
        assert slots.time_slots[0] == "07:00"
        assert service.get_group_time_slots(seed.group.id, "SUNDAY", seed.bob.id).time_slots == []


# ============================================================
# TESTS - SLOT TIME VALIDATION
# ============================================================

class TestValidateScheduleTime:

    def test_configured_time_passes(self, service, seed):
        service.validate_schedule_time(seed.group.id, parse_datetime("2050-01-10T06:30:00Z"))

    def test_unconfigured_time_lists_available(self, service, seed):
        with pytest.raises(NotConfiguredError) as exc_info:
            service.validate_schedule_time(seed.group.id, parse_datetime("2050-01-10T04:30:00Z"))
        assert "Time 05:30 is not configured for MONDAY" in exc_info.value.message
        assert "Available times: 07:00, 07:30" in exc_info.value.message

    def test_explicit_timezone_overrides_group(self, service, seed):
        # 06:30 UTC is 07:30 in Paris but not a configured time in UTC
        with pytest.raises(NotConfiguredError):
            service.validate_schedule_time(seed.group.id, parse_datetime("2050-01-10T06:30:00Z"), "UTC")

    def test_group_without_config(self, service, seed, db_session):
        db_session.delete(crud.get_schedule_config(db_session, seed.group.id))
        db_session.commit()
        with pytest.raises(NoConfigError):
            service.validate_schedule_time(seed.group.id, parse_datetime("2050-01-10T06:30:00Z"))

    def test_outside_operating_hours(self, service, seed, db_session):
        seed.group.operating_hours = {"start_hour": "07:30", "end_hour": "17:00"}
        db_session.commit()
        with pytest.raises(ValidationError, match="outside operating hours"):
            service.validate_schedule_time(seed.group.id, parse_datetime("2050-01-10T06:00:00Z"))


# ============================================================
# TESTS - UPDATES
# ============================================================

class TestUpdateConfig:

    def test_admin_updates_config(self, service, seed, db_session):
        result = service.update_group_schedule_config(
            seed.group.id, {"MONDAY": ["08:00", "07:45"], "SATURDAY": ["10:00"]}, seed.alice.id
        )
        assert result.schedule_hours == {"MONDAY": ["07:45", "08:00"], "SATURDAY": ["10:00"]}
        assert result.is_default is False

        log = db_session.query(models.ActivityLog).filter_by(action_type="GROUP_SCHEDULE_CONFIG_UPDATE").one()
        assert log.user_id == seed.alice.id
        assert log.entity_id == seed.group.id

    @pytest.mark.parametrize("user_name", ["bob", "carol", "dave"])
    def test_non_admins_cannot_update(self, service, seed, user_name):
        user = getattr(seed, user_name)
        with pytest.raises(PermissionError):
            service.update_group_schedule_config(seed.group.id, {"MONDAY": ["07:00"]}, user.id)

    def test_invalid_hours_are_rejected_without_saving(self, service, seed, db_session):
        with pytest.raises(ValidationError):
            service.update_group_schedule_config(seed.group.id, {"MONDAY": ["25:00"]}, seed.alice.id)
        assert crud.get_schedule_config(db_session, seed.group.id).schedule_hours == get_default_schedule_hours()

    def test_update_blocked_by_booked_slot(self, service, seed, db_session, clock, notifications):
        slot = _book_monday_seven(db_session, clock, notifications, seed, child_count=2)
        hours = get_default_schedule_hours()
        hours["MONDAY"].remove("07:00")

        with pytest.raises(SlotsInUseError) as exc_info:
            service.update_group_schedule_config(seed.group.id, hours, seed.alice.id)

        error = exc_info.value
        assert "MONDAY 07:00 (2 children assigned)" in error.message
        assert error.status_code == 409
        assert error.conflicts == [
            {"slot_id": slot.id, "weekday": "MONDAY", "time": "07:00", "child_count": 2}
        ]
        assert "07:00" in crud.get_schedule_config(db_session, seed.group.id).schedule_hours["MONDAY"]

    def test_single_child_wording(self, service, seed, db_session, clock, notifications):
        _book_monday_seven(db_session, clock, notifications, seed, child_count=1)
        with pytest.raises(SlotsInUseError, match=r"MONDAY 07:00 \(1 child assigned\)"):
            service.update_group_schedule_config(seed.group.id, {"TUESDAY": ["07:00"]}, seed.alice.id)

    def test_slot_without_children_does_not_block(self, service, seed, db_session, clock, notifications):
        _book_monday_seven(db_session, clock, notifications, seed, child_count=0)
        result = service.update_group_schedule_config(seed.group.id, {"TUESDAY": ["07:00"]}, seed.alice.id)
        assert "MONDAY" not in result.schedule_hours

    def test_reset_restores_defaults(self, service, seed, db_session):
        service.update_group_schedule_config(seed.group.id, {"MONDAY": ["09:00"]}, seed.alice.id)
        result = service.reset_group_schedule_config(seed.group.id, seed.alice.id)
        assert result.is_default is True
        assert result.schedule_hours == get_default_schedule_hours()
        assert db_session.query(models.ActivityLog).filter_by(action_type="GROUP_SCHEDULE_CONFIG_RESET").count() == 1

    def test_initialize_default_configs(self, service, seed, db_session):
        db_session.delete(crud.get_schedule_config(db_session, seed.group.id))
        db_session.commit()

        assert service.initialize_default_configs() == 1
        assert service.initialize_default_configs() == 0
        assert crud.get_schedule_config(db_session, seed.group.id).schedule_hours == get_default_schedule_hours()
