from datetime import datetime

import mongomock
import pytest

ORG = "org-1"


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    yield client.bus_schedules
    client.close()


@pytest.fixture
def fleet(db):
    db.routes.insert_one({
        "_id": "route-1",
        "organization_id": ORG,
        "origin": "Lilongwe",
        "destination": "Blantyre",
        "stops": ["Dedza", "Ntcheu", "Balaka"],
    })
    db.buses.insert_one({"_id": "bus-1", "organization_id": ORG, "license_plate": "LL 4521", "capacity": 50})
    return {"route_id": "route-1", "bus_id": "bus-1"}


@pytest.fixture
def add_template(db, fleet):
    def _add(**overrides):
        doc = {
            "organization_id": ORG,
            "route_id": fleet["route_id"],
            "bus_id": fleet["bus_id"],
            "departure_time": "07:00",
            "arrival_time": "14:00",
            "days_of_week": [],
            "valid_from": datetime(2025, 1, 1),
            "valid_until": None,
            "price": 15000,
            "available_seats": 40,
            "is_active": True,
            "status": "active",
            "created_by": "staff-1",
            "created_at": datetime(2024, 12, 20),
            "updated_at": datetime(2024, 12, 20),
        }
        doc.update(overrides)
        return str(db.schedule_templates.insert_one(doc).inserted_id)
    return _add


@pytest.fixture
def make_instance():
    """Instance documents as stored: naive UTC datetimes, snake_case fields."""
    counter = iter(range(1, 10_000))

    def _make(**overrides):
        departure = overrides.pop("departure", datetime(2025, 1, 10, 18, 0))
        doc = {
            "_id": f"inst-{next(counter)}",
            "organization_id": ORG,
            "route_id": "route-1",
            "bus_id": "bus-1",
            "template_id": None,
            "departure_datetime": departure,
            "arrival_datetime": departure.replace(hour=min(departure.hour + 4, 23)),
            "price": 15000,
            "available_seats": 40,
            "booked_seats": [],
            "status": "active",
            "is_active": True,
            "trip_status": "scheduled",
            "status_changed_at": datetime(2025, 1, 1),
            "created_at": datetime(2025, 1, 1),
            "updated_at": datetime(2025, 1, 1),
        }
        doc.update(overrides)
        return doc
    return _make
