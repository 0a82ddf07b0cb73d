from datetime import date, datetime, timedelta, timezone

import mongomock
import pytest
from pymongo.errors import AutoReconnect

from services.materializer import Materializer, day_index, instance_key, occurrence_dates, trip_times
from utils.errors import MaterializationError, TransientStoreError

# Friday
NOW = datetime(2025, 1, 10, 10, 0, tzinfo=timezone.utc)


def instances(db, template_id=None):
    query = {"template_id": template_id} if template_id else {}
    return sorted(db.schedules.find(query), key=lambda doc: doc["_id"])


def test_instance_key_is_deterministic():
    assert instance_key("abc123", date(2025, 1, 6)) == "tpl_abc123_2025-01-06"


def test_day_index_counts_from_sunday():
    assert day_index(date(2025, 1, 12)) == 0
    assert day_index(date(2025, 1, 13)) == 1
    assert day_index(date(2025, 1, 18)) == 6


def test_weekday_template_scenario(db, add_template):
    template_id = add_template(days_of_week=[1, 2, 3, 4, 5], departure_time="07:00", arrival_time="14:00",
                               valid_from=datetime(2025, 1, 6), valid_until=None)

    result = Materializer(db, window_days=14).materialize("org-1", now=NOW)

    assert result.created == 10
    dates = [doc["departure_datetime"].date() for doc in instances(db, template_id)]
    assert len(dates) == 10
    assert all(d.isoweekday() <= 5 for d in dates)
    assert date(2025, 1, 11) not in dates and date(2025, 1, 12) not in dates
    assert min(dates) == date(2025, 1, 10) and max(dates) == date(2025, 1, 23)


def test_empty_days_of_week_means_every_day(db, add_template):
    add_template(days_of_week=[])

    result = Materializer(db, window_days=14).materialize("org-1", now=NOW)

    assert result.created == 14


def test_selected_days_inside_validity_window(db, add_template):
    add_template(days_of_week=[1, 3, 5], valid_from=datetime(2025, 1, 13), valid_until=datetime(2025, 1, 20))

    Materializer(db, window_days=14).materialize("org-1", now=NOW)

    dates = [doc["departure_datetime"].date() for doc in instances(db)]
    assert dates == [date(2025, 1, 13), date(2025, 1, 15), date(2025, 1, 17), date(2025, 1, 20)]


def test_occurrence_dates_respect_inclusive_bounds():
    template = {"valid_from": datetime(2025, 1, 10), "valid_until": datetime(2025, 1, 12), "days_of_week": []}
    assert list(occurrence_dates(template, date(2025, 1, 9), 7)) == [
        date(2025, 1, 10), date(2025, 1, 11), date(2025, 1, 12),
    ]


def test_overnight_trip_arrives_next_day(db, add_template):
    add_template(departure_time="23:30", arrival_time="02:00")

    Materializer(db, window_days=1).materialize("org-1", now=NOW)

    [doc] = instances(db)
    assert doc["departure_datetime"] == datetime(2025, 1, 10, 23, 30)
    assert doc["arrival_datetime"] == datetime(2025, 1, 11, 2, 0)


def test_trip_times_use_operating_timezone():
    departure, arrival = trip_times({"departure_time": "07:00", "arrival_time": "07:00"}, date(2025, 1, 10),
                                    "Africa/Blantyre")
    assert departure == datetime(2025, 1, 10, 5, 0, tzinfo=timezone.utc)
    assert arrival == departure + timedelta(days=1)


def test_new_instance_document(db, add_template):
    template_id = add_template(price=12000, available_seats=35)

    Materializer(db, window_days=1).materialize("org-1", now=NOW, created_by="staff-9")

    doc = db.schedules.find_one({"_id": f"tpl_{template_id}_2025-01-10"})
    assert doc["template_id"] == template_id
    assert doc["organization_id"] == "org-1"
    assert doc["price"] == 12000
    assert doc["available_seats"] == 35
    assert doc["booked_seats"] == []
    assert doc["status"] == "active"
    assert doc["trip_status"] == "scheduled"
    assert doc["departure_location"] == "Lilongwe"
    assert doc["arrival_location"] == "Blantyre"
    assert doc["stops"] == ["Dedza", "Ntcheu", "Balaka"]
    assert doc["created_by"] == "staff-9"
    assert doc["status_changed_at"] == datetime(2025, 1, 10, 10, 0)


def test_rerun_is_idempotent(db, add_template):
    add_template(days_of_week=[1, 3, 5])
    add_template(departure_time="18:00", arrival_time="22:00")
    materializer = Materializer(db, window_days=14)

    first = materializer.materialize("org-1", now=NOW)
    snapshot = instances(db)
    second = materializer.materialize("org-1", now=NOW)

    assert first.created == 6 + 14
    assert second.created == 0
    assert second.refreshed == 0
    assert instances(db) == snapshot


def test_rerun_keeps_booking_state(db, add_template):
    template_id = add_template(available_seats=40, price=15000)
    materializer = Materializer(db, window_days=14)
    materializer.materialize("org-1", now=NOW)
    booked_id = f"tpl_{template_id}_2025-01-12"
    db.schedules.update_one({"_id": booked_id}, {"$set": {"booked_seats": ["3", "4"], "available_seats": 38}})
    db.schedule_templates.update_one({"_id": db.schedule_templates.find_one()["_id"]},
                                     {"$set": {"price": 17000, "available_seats": 45}})

    result = materializer.materialize("org-1", now=NOW + timedelta(hours=1))

    booked = db.schedules.find_one({"_id": booked_id})
    assert booked["booked_seats"] == ["3", "4"]
    assert booked["available_seats"] == 38
    assert booked["price"] == 15000
    assert result.created == 0
    assert result.refreshed == 13
    unbooked = db.schedules.find_one({"_id": f"tpl_{template_id}_2025-01-13"})
    assert unbooked["price"] == 17000
    # seat counts are never reset from the template
    assert unbooked["available_seats"] == 40


def test_rerun_leaves_non_active_instances_alone(db, add_template):
    template_id = add_template()
    materializer = Materializer(db, window_days=3)
    materializer.materialize("org-1", now=NOW)
    cancelled_id = f"tpl_{template_id}_2025-01-11"
    db.schedules.update_one({"_id": cancelled_id}, {"$set": {"status": "cancelled", "is_active": False}})
    db.schedule_templates.update_one({}, {"$set": {"departure_time": "09:15"}})

    materializer.materialize("org-1", now=NOW)

    cancelled = db.schedules.find_one({"_id": cancelled_id})
    assert cancelled["status"] == "cancelled"
    assert cancelled["departure_datetime"] == datetime(2025, 1, 11, 7, 0)
    refreshed = db.schedules.find_one({"_id": f"tpl_{template_id}_2025-01-12"})
    assert refreshed["departure_datetime"] == datetime(2025, 1, 12, 9, 15)


def test_only_active_templates_of_the_organization(db, add_template):
    add_template(is_active=False, status="inactive")
    add_template(organization_id="org-2")

    result = Materializer(db, window_days=14).materialize("org-1", now=NOW)

    assert result.created == 0
    assert db.schedules.count_documents({}) == 0


def test_deleted_template_keeps_existing_instances(db, add_template):
    template_id = add_template()
    materializer = Materializer(db, window_days=5)
    materializer.materialize("org-1", now=NOW)
    db.schedule_templates.delete_many({})

    result = materializer.materialize("org-1", now=NOW + timedelta(days=3))

    assert result.created == 0
    assert db.schedules.count_documents({"template_id": template_id}) == 5


def test_missing_route_gives_empty_snapshot(db, add_template):
    add_template(route_id="no-such-route")

    result = Materializer(db, window_days=2).materialize("org-1", now=NOW)

    assert result.created == 2
    assert {doc["departure_location"] for doc in instances(db)} == {""}


def test_malformed_template_is_skipped(db, add_template):
    broken_id = add_template(departure_time="7am")
    add_template()

    result = Materializer(db, window_days=2).materialize("org-1", now=NOW)

    assert result.skipped_templates == [broken_id]
    assert result.created == 2


def test_partial_batch_failure_can_be_retried(db, add_template, monkeypatch):
    add_template()
    original = mongomock.Collection.bulk_write
    calls = []

    def flaky_bulk_write(self, requests, *args, **kwargs):
        calls.append(len(requests))
        if len(calls) == 2:
            raise AutoReconnect("primary stepped down")
        return original(self, requests, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "bulk_write", flaky_bulk_write)
    materializer = Materializer(db, window_days=14, batch_size=3)

    with pytest.raises(MaterializationError) as excinfo:
        materializer.materialize("org-1", now=NOW)

    assert isinstance(excinfo.value, TransientStoreError)
    assert excinfo.value.created == 3
    assert db.schedules.count_documents({}) == 3

    monkeypatch.undo()
    result = materializer.materialize("org-1", now=NOW)

    assert result.created == 11
    assert db.schedules.count_documents({}) == 14
