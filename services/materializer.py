# services/materializer.py
"""Expands active templates into concrete schedule instances.

Every instance made from a template is keyed ``tpl_{templateId}_{YYYY-MM-DD}``,
so materialization is an upsert and can be re-run at any time, from any number
of callers at once, without duplicating trips. Two writes go out per date,
batched with ``bulk_write``:

* an insert-only upsert (``$setOnInsert``) carrying the full initial document,
  which leaves an existing instance alone, seats and status included;
* a conditional refresh of the template-derived descriptive fields, matched
  only while the instance is still active, unbooked and actually out of date.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, List, Mapping, Optional, Tuple

from pymongo import UpdateOne
from pymongo.database import Database
from pymongo.errors import BulkWriteError, PyMongoError

from config import settings
from models.schedule import InstanceStatus, TripStatus
from services import clock
from services.lookup import FleetLookup
from utils.errors import MaterializationError
from utils.logging_config import organization_context

logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    created: int = 0
    refreshed: int = 0
    skipped_templates: List[str] = field(default_factory=list)


def instance_key(template_id: str, day: date) -> str:
    return f"tpl_{template_id}_{day.isoformat()}"


def day_index(day: date) -> int:
    """0 = Sunday .. 6 = Saturday, the numbering templates use."""
    return day.isoweekday() % 7


def runs_on(template: Mapping, day: date) -> bool:
    if day < clock.to_date(template["valid_from"]):
        return False
    valid_until = template.get("valid_until")
    if valid_until is not None and day > clock.to_date(valid_until):
        return False
    days = template.get("days_of_week") or []
    # an empty set means every day
    return not days or day_index(day) in days


def occurrence_dates(template: Mapping, today: date, window_days: int) -> Iterator[date]:
    for offset in range(window_days):
        day = today + timedelta(days=offset)
        if runs_on(template, day):
            yield day


def trip_times(template: Mapping, day: date, tz: str = "UTC") -> Tuple[datetime, datetime]:
    departure = clock.at_time_of_day(day, template["departure_time"], tz)
    arrival = clock.at_time_of_day(day, template["arrival_time"], tz)
    if arrival <= departure:
        # overnight trip
        arrival = clock.at_time_of_day(day + timedelta(days=1), template["arrival_time"], tz)
    return departure, arrival


class Materializer:
    def __init__(
        self,
        db: Database,
        window_days: int = settings.window_days,
        batch_size: int = settings.write_batch_size,
        timezone: str = settings.timezone,
    ):
        self.db = db
        self.window_days = window_days
        self.batch_size = batch_size
        self.timezone = timezone

    def materialize(
        self,
        organization_id: str,
        now: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> MaterializationResult:
        with organization_context(organization_id):
            return self._materialize(organization_id, now, created_by)

    def _materialize(self, organization_id: str, now: Optional[datetime], created_by: Optional[str]) -> MaterializationResult:
        now = clock.to_datetime(now or clock.utcnow())
        today = clock.local_date(now, self.timezone)
        stamp = clock.to_storage(now)
        lookup = FleetLookup(self.db)
        result = MaterializationResult()

        templates = list(self.db.schedule_templates.find({"organization_id": organization_id, "is_active": True}))
        if not templates:
            logger.info(f"No active templates for {organization_id}, nothing to materialize")
            return result

        inserts: List[UpdateOne] = []
        refreshes: List[UpdateOne] = []
        for template in templates:
            template_id = str(template["_id"])
            try:
                occurrences = [(day, *trip_times(template, day, self.timezone))
                               for day in occurrence_dates(template, today, self.window_days)]
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed template {template_id}: {exc}")
                result.skipped_templates.append(template_id)
                continue

            snapshot = lookup.route_snapshot(template["route_id"])
            for day, departure, arrival in occurrences:
                insert, refresh = self._upsert_ops(template, template_id, day, departure, arrival,
                                                   snapshot, stamp, created_by)
                inserts.append(insert)
                refreshes.append(refresh)
                if len(inserts) >= self.batch_size:
                    self._flush(inserts, refreshes, result)
                    inserts, refreshes = [], []
        self._flush(inserts, refreshes, result)

        logger.info(
            f"Materialized {organization_id}: {result.created} created, {result.refreshed} refreshed "
            f"over {self.window_days} days from {today.isoformat()}"
        )
        return result

    def _upsert_ops(self, template, template_id, day, departure, arrival, snapshot, stamp, created_by):
        key = instance_key(template_id, day)
        descriptive = {
            "price": template["price"],
            "departure_datetime": clock.to_storage(departure),
            "arrival_datetime": clock.to_storage(arrival),
            **snapshot,
        }
        initial = {
            "organization_id": template["organization_id"],
            "route_id": template["route_id"],
            "bus_id": template["bus_id"],
            "template_id": template_id,
            **descriptive,
            "available_seats": template["available_seats"],
            "booked_seats": [],
            "status": InstanceStatus.ACTIVE.value,
            "is_active": True,
            "trip_status": TripStatus.SCHEDULED.value,
            "current_stop_index": 0,
            "departed_stops": [],
            "status_changed_at": stamp,
            "created_by": created_by or template.get("created_by"),
            "created_at": stamp,
            "updated_at": stamp,
        }
        stale = {
            "_id": key,
            "status": InstanceStatus.ACTIVE.value,
            "booked_seats": {"$size": 0},
            "$or": [{name: {"$ne": value}} for name, value in descriptive.items()],
        }
        return (
            UpdateOne({"_id": key}, {"$setOnInsert": initial}, upsert=True),
            UpdateOne(stale, {"$set": {**descriptive, "updated_at": stamp}}),
        )

    def _flush(self, inserts: List[UpdateOne], refreshes: List[UpdateOne], result: MaterializationResult) -> None:
        if not inserts:
            return
        try:
            inserted = self.db.schedules.bulk_write(inserts, ordered=True)
            result.created += inserted.upserted_count
            # refresh filters only match stale documents, so matched == refreshed
            refreshed = self.db.schedules.bulk_write(refreshes, ordered=True)
            result.refreshed += refreshed.matched_count
        except BulkWriteError as exc:
            result.created += exc.details.get("nUpserted", 0)
            raise MaterializationError(
                f"Materialization stopped after {result.created} new instances: {exc}",
                created=result.created,
            ) from exc
        except PyMongoError as exc:
            raise MaterializationError(
                f"Materialization stopped after {result.created} new instances: {exc}",
                created=result.created,
            ) from exc


def materialize(db: Database, organization_id: str, now: Optional[datetime] = None,
                created_by: Optional[str] = None) -> MaterializationResult:
    return Materializer(db).materialize(organization_id, now=now, created_by=created_by)
