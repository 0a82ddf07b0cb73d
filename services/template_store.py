# services/template_store.py
"""Schedule templates: the recurrence rules the materializer expands.

Deleting or deactivating a template only stops future materialization;
instances that already exist are never touched from here.
"""

import logging
from datetime import datetime
from typing import List, Optional

import pydantic
from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from models.template import TemplateCreate, TemplateUpdate
from services import clock
from services.lookup import FleetLookup
from utils.errors import NotFoundError, ValidationError, store_error

logger = logging.getLogger(__name__)

DAY_SHORT_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
EVERY_DAY = list(range(7))

# fields copied from the request model into the stored document
_TEMPLATE_FIELDS = (
    "organization_id", "route_id", "bus_id", "departure_time", "arrival_time",
    "days_of_week", "price", "available_seats", "is_active",
)


def days_label(days: List[int]) -> str:
    normalized = sorted(set(days))
    if not normalized or normalized == EVERY_DAY:
        return "Every day"
    if normalized == [1, 2, 3, 4, 5]:
        return "Weekdays"
    if normalized == [0, 6]:
        return "Weekends"
    return ", ".join(DAY_SHORT_NAMES[d] for d in normalized)


def template_status(is_active: bool) -> str:
    return "active" if is_active else "inactive"


def _template_oid(template_id: str) -> ObjectId:
    if not ObjectId.is_valid(template_id):
        raise NotFoundError(f"Template {template_id} not found")
    return ObjectId(template_id)


def check_fleet(template: TemplateCreate, lookup: FleetLookup) -> None:
    lookup.route(template.route_id)
    bus = lookup.bus(template.bus_id)
    capacity = bus.get("capacity")
    if capacity is not None and template.available_seats > capacity:
        raise ValidationError(f"Seats cannot exceed bus capacity ({capacity})")


def _document_fields(template: TemplateCreate) -> dict:
    doc = {field: getattr(template, field) for field in _TEMPLATE_FIELDS}
    doc["valid_from"] = clock.date_to_storage(template.valid_from)
    doc["valid_until"] = clock.date_to_storage(template.valid_until) if template.valid_until else None
    doc["status"] = template_status(template.is_active)
    return doc


def _as_create_data(doc: dict) -> dict:
    data = {field: doc.get(field) for field in _TEMPLATE_FIELDS}
    data["valid_from"] = clock.to_date(doc["valid_from"])
    data["valid_until"] = clock.to_date(doc["valid_until"]) if doc.get("valid_until") else None
    return data


def get_template(db: Database, template_id: str) -> dict:
    template = db.schedule_templates.find_one({"_id": _template_oid(template_id)})
    if not template:
        raise NotFoundError(f"Template {template_id} not found")
    return template


def list_templates(db: Database, organization_id: str, active_only: bool = False) -> List[dict]:
    query = {"organization_id": organization_id}
    if active_only:
        query["is_active"] = True
    return list(db.schedule_templates.find(query).sort("created_at", -1))


def create_template(
    db: Database,
    template: TemplateCreate,
    created_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    check_fleet(template, FleetLookup(db))
    now = clock.to_storage(now or clock.utcnow())

    doc = _document_fields(template)
    doc.update({"created_by": created_by, "created_at": now, "updated_at": now})
    try:
        result = db.schedule_templates.insert_one(doc)
    except PyMongoError as exc:
        raise store_error(exc, "Creating template") from exc

    logger.info(f"Template {result.inserted_id} created for {template.organization_id} ({days_label(template.days_of_week)})")
    return doc


def update_template(
    db: Database,
    template_id: str,
    changes: TemplateUpdate,
    now: Optional[datetime] = None,
) -> dict:
    existing = get_template(db, template_id)
    merged = _as_create_data(existing)
    merged.update(changes.model_dump(exclude_unset=True))
    try:
        template = TemplateCreate.model_validate(merged)
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc
    check_fleet(template, FleetLookup(db))

    update = _document_fields(template)
    update["updated_at"] = clock.to_storage(now or clock.utcnow())
    try:
        db.schedule_templates.update_one({"_id": existing["_id"]}, {"$set": update})
    except PyMongoError as exc:
        raise store_error(exc, "Updating template") from exc
    return {**existing, **update}


def set_template_active(
    db: Database,
    template_id: str,
    is_active: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Set ``is_active`` (or flip it when ``is_active`` is None), keeping ``status`` in step."""
    existing = get_template(db, template_id)
    if is_active is None:
        is_active = not existing.get("is_active", False)

    update = {
        "is_active": is_active,
        "status": template_status(is_active),
        "updated_at": clock.to_storage(now or clock.utcnow()),
    }
    try:
        db.schedule_templates.update_one({"_id": existing["_id"]}, {"$set": update})
    except PyMongoError as exc:
        raise store_error(exc, "Toggling template") from exc

    logger.info(f"Template {template_id} {'activated' if is_active else 'paused'}")
    return {**existing, **update}


def delete_template(db: Database, template_id: str) -> None:
    try:
        result = db.schedule_templates.delete_one({"_id": _template_oid(template_id)})
    except PyMongoError as exc:
        raise store_error(exc, "Deleting template") from exc
    if result.deleted_count == 0:
        raise NotFoundError(f"Template {template_id} not found")
    logger.info(f"Template {template_id} deleted, existing instances left untouched")
