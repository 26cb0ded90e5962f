"""
Tests for the REST API.

Runs the FastAPI app against the in-memory database and checks that
domain errors map to their HTTP status codes.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from db.database import get_db
from main import app

pytestmark = pytest.mark.api

MONDAY_0700 = "2050-01-10T06:00:00Z"
MONDAY_0730 = "2050-01-10T06:30:00Z"


@pytest.fixture
def ids(seed, db_session):
    values = {
        "alice": seed.alice.id,
        "carol": seed.carol.id,
        "dave": seed.dave.id,
        "group": seed.group.id,
        "minivan": seed.minivan.id,
        "sedan": seed.sedan.id,
        "emma": seed.children[0].id,
        "lucas": seed.children[1].id,
        "noah": seed.noah.id,
    }
    db_session.close()
    return values


@pytest.fixture
def client(db_engine, ids):
    Session = sessionmaker(bind=db_engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with patch("services.notification_service.NotificationDispatcher.dispatch", return_value="thread"):
        yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-Id": user_id}


def create_slot(client, ids, when=MONDAY_0730, vehicle="minivan", user="alice", **extra):
    return client.post(
        f"/api/groups/{ids['group']}/schedule-slots",
        json={"datetime": when, "vehicle_id": ids[vehicle], **extra},
        headers=as_user(ids[user]),
    )


# ============================================================
# TESTS - AUTH AND HEALTH
# ============================================================

class TestAuth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_user_header(self, client, ids):
        assert client.get(f"/api/groups/{ids['group']}/schedule-config").status_code == 401

    def test_unknown_user(self, client, ids):
        response = client.get(f"/api/groups/{ids['group']}/schedule-config", headers=as_user("ghost"))
        assert response.status_code == 401


# ============================================================
# TESTS - SCHEDULE CONFIG
# ============================================================

class TestScheduleConfigApi:

    def test_default_config(self, client):
        response = client.get("/api/schedule-config/default")
        assert response.status_code == 200
        assert "MONDAY" in response.json()

    def test_read_config(self, client, ids):
        response = client.get(f"/api/groups/{ids['group']}/schedule-config", headers=as_user(ids["carol"]))
        assert response.status_code == 200
        assert response.json()["is_default"] is True

    def test_outsider_forbidden(self, client, ids):
        response = client.get(f"/api/groups/{ids['group']}/schedule-config", headers=as_user(ids["dave"]))
        assert response.status_code == 403
        assert "detail" in response.json()

    def test_time_slots(self, client, ids):
        response = client.get(
            f"/api/groups/{ids['group']}/schedule-config/time-slots",
            params={"weekday": "MONDAY"},
            headers=as_user(ids["alice"]),
        )
        assert response.status_code == 200
        assert response.json()["time_slots"][:2] == ["07:00", "07:30"]

    def test_invalid_update(self, client, ids):
        response = client.put(
            f"/api/groups/{ids['group']}/schedule-config",
            json={"schedule_hours": {"MONDAY": ["07:00", "07:05"]}},
            headers=as_user(ids["alice"]),
        )
        assert response.status_code == 400
        assert "15-minute interval" in response.json()["detail"]

    def test_update_blocked_by_bookings(self, client, ids):
        slot = create_slot(client, ids, when=MONDAY_0700).json()
        for child in ("emma", "lucas"):
            client.post(
                f"/api/schedule-slots/{slot['id']}/children",
                json={"child_id": ids[child], "vehicle_assignment_id": slot["vehicle_assignments"][0]["id"]},
                headers=as_user(ids["alice"]),
            )

        response = client.put(
            f"/api/groups/{ids['group']}/schedule-config",
            json={"schedule_hours": {"MONDAY": ["07:30"]}},
            headers=as_user(ids["alice"]),
        )

        assert response.status_code == 409
        body = response.json()
        assert "MONDAY 07:00 (2 children assigned)" in body["detail"]
        assert body["conflicts"][0]["child_count"] == 2

    def test_reset(self, client, ids):
        response = client.post(f"/api/groups/{ids['group']}/schedule-config/reset", headers=as_user(ids["alice"]))
        assert response.status_code == 200
        assert response.json()["is_default"] is True


# ============================================================
# TESTS - SCHEDULE SLOTS
# ============================================================

class TestScheduleSlotsApi:

    def test_create_and_fetch(self, client, ids):
        response = create_slot(client, ids)
        assert response.status_code == 201
        slot = response.json()
        assert slot["total_capacity"] == 5
        assert slot["child_count"] == 0
        assert slot["vehicle_assignments"][0]["available_seats"] == 5

        fetched = client.get(f"/api/schedule-slots/{slot['id']}", headers=as_user(ids["carol"]))
        assert fetched.status_code == 200
        assert fetched.json()["id"] == slot["id"]

    def test_not_configured_time(self, client, ids):
        response = create_slot(client, ids, when="2050-01-10T04:30:00Z")
        assert response.status_code == 400
        assert "not configured for MONDAY" in response.json()["detail"]

    def test_past_time(self, client, ids):
        response = create_slot(client, ids, when="2024-01-14T10:00:00Z")
        assert response.status_code == 400
        assert "in the past" in response.json()["detail"]

    def test_invalid_date(self, client, ids):
        assert create_slot(client, ids, when="someday").status_code == 400

    def test_unknown_slot(self, client, ids):
        assert client.get("/api/schedule-slots/missing", headers=as_user(ids["alice"])).status_code == 404

    def test_capacity_conflict(self, client, ids):
        slot = create_slot(client, ids, seat_override=1).json()
        assignment_id = slot["vehicle_assignments"][0]["id"]

        first = client.post(
            f"/api/schedule-slots/{slot['id']}/children",
            json={"child_id": ids["emma"], "vehicle_assignment_id": assignment_id},
            headers=as_user(ids["alice"]),
        )
        second = client.post(
            f"/api/schedule-slots/{slot['id']}/children",
            json={"child_id": ids["lucas"], "vehicle_assignment_id": assignment_id},
            headers=as_user(ids["alice"]),
        )

        assert first.status_code == 200
        assert first.json()["available_seats"] == 0
        assert second.status_code == 409

    def test_blank_child_id(self, client, ids):
        slot = create_slot(client, ids).json()
        response = client.post(
            f"/api/schedule-slots/{slot['id']}/children",
            json={"child_id": "  ", "vehicle_assignment_id": slot["vehicle_assignments"][0]["id"]},
            headers=as_user(ids["alice"]),
        )
        assert response.status_code == 422

    def test_vehicle_lifecycle(self, client, ids):
        slot = create_slot(client, ids).json()

        added = client.post(
            f"/api/schedule-slots/{slot['id']}/vehicles",
            json={"vehicle_id": ids["sedan"], "driver_id": ids["carol"]},
            headers=as_user(ids["carol"]),
        )
        assert added.status_code == 200
        assert added.json()["total_capacity"] == 9

        removed = client.delete(
            f"/api/schedule-slots/{slot['id']}/vehicles/{ids['sedan']}", headers=as_user(ids["carol"])
        )
        assert removed.json()["slot_deleted"] is False
        assert removed.json()["slot"]["total_capacity"] == 5

        last = client.delete(
            f"/api/schedule-slots/{slot['id']}/vehicles/{ids['minivan']}", headers=as_user(ids["alice"])
        )
        assert last.json()["slot_deleted"] is True
        assert last.json()["slot"] is None
        assert client.get(f"/api/schedule-slots/{slot['id']}", headers=as_user(ids["alice"])).status_code == 404

    def test_outsider_cannot_remove_vehicle(self, client, ids):
        slot = create_slot(client, ids).json()
        response = client.delete(
            f"/api/schedule-slots/{slot['id']}/vehicles/{ids['minivan']}", headers=as_user(ids["dave"])
        )
        assert response.status_code == 403
        assert client.get(f"/api/schedule-slots/{slot['id']}", headers=as_user(ids["alice"])).status_code == 200

    def test_driver_and_seat_override(self, client, ids):
        slot = create_slot(client, ids).json()
        assignment_id = slot["vehicle_assignments"][0]["id"]

        driver = client.patch(
            f"/api/vehicle-assignments/{assignment_id}/driver",
            json={"driver_id": ids["alice"]},
            headers=as_user(ids["alice"]),
        )
        assert driver.status_code == 200
        assert driver.json()["vehicle_assignments"][0]["driver"]["name"] == "Alice Martin"

        too_many = client.patch(
            f"/api/vehicle-assignments/{assignment_id}/seat-override",
            json={"seat_override": 11},
            headers=as_user(ids["alice"]),
        )
        assert too_many.status_code == 400

    def test_conflicts_endpoint(self, client, ids):
        slot = create_slot(client, ids).json()
        response = client.get(f"/api/schedule-slots/{slot['id']}/conflicts", headers=as_user(ids["alice"]))
        assert response.status_code == 200
        assert response.json() == []

    def test_week_schedule(self, client, ids):
        slot = create_slot(client, ids).json()
        response = client.get(f"/api/groups/{ids['group']}/schedule/week/2050/2", headers=as_user(ids["alice"]))
        assert response.status_code == 200
        assert [s["id"] for s in response.json()["schedule_slots"]] == [slot["id"]]

    def test_available_children(self, client, ids):
        slot = create_slot(client, ids).json()
        response = client.get(
            f"/api/schedule-slots/{slot['id']}/available-children", headers=as_user(ids["carol"])
        )
        assert [c["name"] for c in response.json()] == ["Noah"]


# ============================================================
# TESTS - DASHBOARD
# ============================================================

class TestDashboardApi:

    def test_dashboard_sections(self, client, ids):
        response = client.get("/api/dashboard", headers=as_user(ids["alice"]))
        assert response.status_code == 200
        body = response.json()
        assert body["stats"]["status"] == "ok"
        assert body["stats"]["data"]["children"] == 4

    def test_stats(self, client, ids):
        response = client.get("/api/dashboard/stats", headers=as_user(ids["carol"]))
        assert response.status_code == 200
        assert response.json()["vehicles"] == 1
