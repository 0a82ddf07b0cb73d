# services/transitions.py
"""Manual status changes on schedule instances, plus one-off trips.

Reapplying the status an instance already has is a no-op, which is what lets
the auto-transition monitor retry blindly.
"""

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from models.schedule import TERMINAL_STATUSES, Bucket, InstanceStatus, OneOffScheduleCreate, TripStatus
from services import clock
from services.classifier import DEFAULT_RULES, BucketRules, classify
from services.lookup import FleetLookup
from utils.errors import ConflictError, NotFoundError, ValidationError, store_error

logger = logging.getLogger(__name__)

MANUAL_STATUSES = TERMINAL_STATUSES
ACTIONABLE_BUCKETS = frozenset({Bucket.TODAY, Bucket.UPCOMING, Bucket.ATTENTION})
ARCHIVABLE_BUCKETS = frozenset({Bucket.COMPLETED, Bucket.CANCELLED, Bucket.MISSED})


def get_instance(db: Database, instance_id: str) -> dict:
    instance = db.schedules.find_one({"_id": instance_id})
    if instance is None:
        raise NotFoundError(f"Schedule {instance_id} not found")
    return instance


def apply_status(
    db: Database,
    instance_id: str,
    new_status: str,
    now: Optional[datetime] = None,
    rules: BucketRules = DEFAULT_RULES,
) -> bool:
    """Move an active instance to completed, cancelled or missed.

    Returns True when this call wrote the transition, False when the instance
    already had ``new_status``. Raises ConflictError when the instance is
    terminal with a different status or sits outside the today, upcoming and
    attention buckets.
    """
    new_status = getattr(new_status, "value", new_status)
    if new_status not in MANUAL_STATUSES:
        raise ValidationError(f"Status must be one of {sorted(MANUAL_STATUSES)}, got {new_status!r}")

    now = clock.to_datetime(now or clock.utcnow())
    instance = get_instance(db, instance_id)
    if instance.get("status") == new_status:
        return False

    bucket = classify(instance, now, rules)
    if bucket not in ACTIONABLE_BUCKETS:
        raise ConflictError(
            f"Schedule {instance_id} cannot be marked {new_status} "
            f"(status {instance.get('status')}, bucket {bucket.value if bucket else 'hidden'})"
        )

    stamp = clock.to_storage(now)
    update = {
        "$set": {
            "status": new_status,
            "is_active": False,
            "completed_at": stamp if new_status == InstanceStatus.COMPLETED.value else None,
            "status_changed_at": stamp,
            "updated_at": stamp,
        },
        # any pending auto-missed countdown is void once someone acts
        "$unset": {"attention_flagged_at": ""},
    }
    try:
        result = db.schedules.update_one({"_id": instance_id, "status": InstanceStatus.ACTIVE.value}, update)
    except PyMongoError as exc:
        raise store_error(exc, f"Marking schedule {instance_id} {new_status}") from exc

    if result.matched_count == 0:
        # lost a race with another writer
        current = get_instance(db, instance_id)
        if current.get("status") == new_status:
            return False
        raise ConflictError(f"Schedule {instance_id} is already {current.get('status')}")

    logger.info(f"Schedule {instance_id} marked {new_status}")
    return True


def archive(
    db: Database,
    instance_id: str,
    now: Optional[datetime] = None,
    rules: BucketRules = DEFAULT_RULES,
) -> bool:
    """Archive an instance that is showing in the completed, cancelled or missed bucket."""
    now = clock.to_datetime(now or clock.utcnow())
    instance = get_instance(db, instance_id)
    status = instance.get("status")
    if status == InstanceStatus.ARCHIVED.value:
        return False
    bucket = classify(instance, now, rules)
    if bucket not in ARCHIVABLE_BUCKETS:
        raise ConflictError(
            f"Only schedules in the completed, cancelled or missed bucket can be archived "
            f"({instance_id} is {status}, bucket {bucket.value if bucket else 'hidden'})"
        )

    stamp = clock.to_storage(now)
    try:
        result = db.schedules.update_one(
            {"_id": instance_id, "status": {"$in": sorted(TERMINAL_STATUSES)}},
            {"$set": {"status": InstanceStatus.ARCHIVED.value, "archived_at": stamp, "updated_at": stamp}},
        )
    except PyMongoError as exc:
        raise store_error(exc, f"Archiving schedule {instance_id}") from exc

    if result.matched_count == 0:
        current = get_instance(db, instance_id)
        if current.get("status") == InstanceStatus.ARCHIVED.value:
            return False
        raise ConflictError(f"Schedule {instance_id} is {current.get('status')}, not archivable")

    logger.info(f"Schedule {instance_id} archived")
    return True


def create_one_off(
    db: Database,
    payload: OneOffScheduleCreate,
    created_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = clock.to_datetime(now or clock.utcnow())
    lookup = FleetLookup(db)
    route = lookup.route(payload.route_id)
    bus = lookup.bus(payload.bus_id)

    capacity = bus.get("capacity")
    if capacity is not None and payload.available_seats > capacity:
        raise ValidationError(f"Seats cannot exceed bus capacity ({capacity})")
    departure = clock.to_datetime(payload.departure_datetime)
    arrival = clock.to_datetime(payload.arrival_datetime)
    if departure <= now:
        raise ValidationError("Departure must be in the future")
    if arrival <= departure:
        raise ValidationError("Arrival must be after departure")

    stamp = clock.to_storage(now)
    doc = {
        "_id": str(ObjectId()),
        "organization_id": payload.organization_id,
        "route_id": payload.route_id,
        "bus_id": payload.bus_id,
        "template_id": None,
        "departure_datetime": clock.to_storage(departure),
        "arrival_datetime": clock.to_storage(arrival),
        "departure_location": route.get("origin", ""),
        "arrival_location": route.get("destination", ""),
        "stops": list(route.get("stops", [])),
        "price": payload.price,
        "available_seats": payload.available_seats,
        "booked_seats": [],
        "status": InstanceStatus.ACTIVE.value,
        "is_active": True,
        "trip_status": TripStatus.SCHEDULED.value,
        "current_stop_index": 0,
        "departed_stops": [],
        "status_changed_at": stamp,
        "created_by": created_by,
        "created_at": stamp,
        "updated_at": stamp,
    }
    try:
        db.schedules.insert_one(doc)
    except PyMongoError as exc:
        raise store_error(exc, "Creating one-off schedule") from exc

    logger.info(f"One-off schedule {doc['_id']} created for {payload.organization_id}")
    return doc
