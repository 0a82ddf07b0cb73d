from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app
from services import clock


@pytest.fixture
def client(db, fleet):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def template_body(**overrides):
    body = {
        "organization_id": "org-1",
        "route_id": "route-1",
        "bus_id": "bus-1",
        "departure_time": "07:00",
        "arrival_time": "14:00",
        "days_of_week": [],
        "valid_from": "2025-01-01",
        "price": 15000,
        "available_seats": 40,
    }
    body.update(overrides)
    return body


def one_off_body(**overrides):
    departure = clock.utcnow() + timedelta(days=2)
    body = {
        "organization_id": "org-1",
        "route_id": "route-1",
        "bus_id": "bus-1",
        "departure_datetime": departure.isoformat(),
        "arrival_datetime": (departure + timedelta(hours=4)).isoformat(),
        "price": 20000,
        "available_seats": 30,
    }
    body.update(overrides)
    return body


def test_create_and_list_templates(client):
    response = client.post("/api/templates/", json=template_body(days_of_week=[6, 0]),
                           headers={"X-User-ID": "staff-1"})

    assert response.status_code == 201
    created = response.json()
    assert created["days_label"] == "Weekends"
    assert created["status"] == "active"
    assert created["created_by"] == "staff-1"

    listed = client.get("/api/templates/", params={"organization_id": "org-1"}).json()
    assert [t["id"] for t in listed] == [created["id"]]


def test_template_errors_map_to_http(client):
    assert client.post("/api/templates/", json=template_body(available_seats=60)).status_code == 400
    assert client.post("/api/templates/", json=template_body(departure_time="7am")).status_code == 422
    assert client.get("/api/templates/65a000000000000000000000").status_code == 404


def test_toggle_and_delete_template(client):
    template_id = client.post("/api/templates/", json=template_body()).json()["id"]

    toggled = client.patch(f"/api/templates/{template_id}/toggle").json()
    assert toggled["is_active"] is False

    assert client.delete(f"/api/templates/{template_id}").status_code == 200
    assert client.delete(f"/api/templates/{template_id}").status_code == 404


def test_materialize_and_grouped_view(client, db):
    client.post("/api/templates/", json=template_body())

    result = client.post("/api/schedules/materialize", params={"organization_id": "org-1"}).json()
    assert result["created"] == result["window_days"]
    again = client.post("/api/schedules/materialize", params={"organization_id": "org-1"}).json()
    assert again["created"] == 0
    assert db.schedules.count_documents({}) == result["window_days"]

    grouped = client.get("/api/schedules/", params={"organization_id": "org-1"}).json()
    assert set(grouped["buckets"]) == {"live", "today", "upcoming", "attention", "completed", "cancelled", "missed"}
    visible = sum(len(members) for members in grouped["buckets"].values())
    # today's 07:00 trip can sit in the grace period
    assert visible in (result["window_days"] - 1, result["window_days"])
    assert grouped["stats"]["templates"] == 1
    assert grouped["stats"]["upcoming"] == len(grouped["buckets"]["upcoming"])


def test_one_off_lifecycle(client):
    response = client.post("/api/schedules/", json=one_off_body())
    assert response.status_code == 201
    schedule = response.json()
    assert schedule["bucket"] == "upcoming"
    assert schedule["template_id"] is None

    path = f"/api/schedules/{schedule['id']}"
    first = client.put(f"{path}/status", json={"status": "cancelled"})
    assert first.status_code == 200
    assert first.json()["message"] == "Schedule marked as cancelled"
    assert client.put(f"{path}/status", json={"status": "cancelled"}).json()["message"] == "Schedule already cancelled"
    assert client.put(f"{path}/status", json={"status": "completed"}).status_code == 409
    assert client.put(f"{path}/status", json={"status": "active"}).status_code == 422

    assert client.get(path).json()["bucket"] == "cancelled"
    assert client.put(f"{path}/archive").json()["message"] == "Schedule archived"
    assert client.get(path).json()["bucket"] is None


def test_one_off_in_the_past_is_rejected(client):
    departure = clock.utcnow() - timedelta(days=1)
    body = one_off_body(departure_datetime=departure.isoformat(),
                        arrival_datetime=(departure + timedelta(hours=2)).isoformat())

    assert client.post("/api/schedules/", json=body).status_code == 400


def test_attention_and_monitor_endpoints(client, db, make_instance):
    overdue = make_instance(departure=clock.to_storage(clock.utcnow() - timedelta(hours=3)))
    db.schedules.insert_one(overdue)

    tick = client.post("/api/schedules/monitor/tick", params={"organization_id": "org-1"}).json()
    assert tick["flagged"] == [overdue["_id"]]

    attention = client.get("/api/schedules/attention", params={"organization_id": "org-1"}).json()
    assert [s["id"] for s in attention] == [overdue["_id"]]
    assert 0 < attention[0]["seconds_until_missed"] <= 4 * 3600


def test_unknown_schedule(client):
    assert client.get("/api/schedules/nope").status_code == 404
    assert client.put("/api/schedules/nope/status", json={"status": "completed"}).status_code == 404


def test_schedule_with_numeric_seat_ids(client, db, make_instance):
    booked = make_instance(departure=clock.to_storage(clock.utcnow() + timedelta(days=2)),
                           booked_seats=[3, 4], available_seats=38)
    db.schedules.insert_one(booked)

    response = client.get(f"/api/schedules/{booked['_id']}")

    assert response.status_code == 200
    assert response.json()["booked_seats"] == [3, 4]
    assert response.json()["available_seats"] == 38
