# services/classifier.py
"""Operational bucket of a schedule instance at a point in time.

``classify`` is pure: the bucket depends only on the stored document and
``now``. The decision is an ordered rule table, first match wins.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from config import Settings, settings
from models.schedule import TERMINAL_STATUSES, Bucket, InstanceStatus, TripStatus
from services import clock

LIVE_TRIP_STATUSES = frozenset({TripStatus.BOARDING.value, TripStatus.IN_TRANSIT.value})

# dashboard display order
BUCKET_ORDER = (
    Bucket.LIVE, Bucket.TODAY, Bucket.UPCOMING, Bucket.ATTENTION,
    Bucket.COMPLETED, Bucket.CANCELLED, Bucket.MISSED,
)
# most recent first in these, soonest first everywhere else
NEWEST_FIRST = frozenset({Bucket.COMPLETED, Bucket.CANCELLED, Bucket.MISSED})


@dataclass(frozen=True)
class BucketRules:
    past_due_hours: float = 2
    auto_missed_hours: float = 4
    archive_after_days: float = 5
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "BucketRules":
        return cls(
            past_due_hours=source.past_due_hours,
            auto_missed_hours=source.auto_missed_hours,
            archive_after_days=source.archive_after_days,
            timezone=source.timezone,
        )

    @property
    def past_due(self) -> timedelta:
        return timedelta(hours=self.past_due_hours)

    @property
    def auto_missed(self) -> timedelta:
        return timedelta(hours=self.auto_missed_hours)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.archive_after_days)


DEFAULT_RULES = BucketRules.from_settings()


def _status(doc: Mapping) -> str:
    return doc.get("status", InstanceStatus.ACTIVE.value)


def _departure(doc: Mapping) -> datetime:
    return clock.to_datetime(doc["departure_datetime"])


def _status_changed_at(doc: Mapping) -> datetime:
    changed = doc.get("status_changed_at") or doc.get("updated_at") or doc["departure_datetime"]
    return clock.to_datetime(changed)


def _is_archived(doc, now, rules):
    return _status(doc) == InstanceStatus.ARCHIVED.value


def _is_retention_expired(doc, now, rules):
    return _status(doc) in TERMINAL_STATUSES and now - _status_changed_at(doc) > rules.retention


def _is_terminal(doc, now, rules):
    return _status(doc) in TERMINAL_STATUSES


def _is_live(doc, now, rules):
    return doc.get("trip_status") in LIVE_TRIP_STATUSES


def _is_past_due(doc, now, rules):
    return _status(doc) == InstanceStatus.ACTIVE.value and now - _departure(doc) > rules.past_due


def _departs_later_today(doc, now, rules):
    departure = _departure(doc)
    return (
        _status(doc) == InstanceStatus.ACTIVE.value
        and clock.is_same_local_day(departure, now, rules.timezone)
        and departure > now
    )


def _departs_later(doc, now, rules):
    return _status(doc) == InstanceStatus.ACTIVE.value and _departure(doc) > now


Predicate = Callable[[Mapping, datetime, BucketRules], bool]
Outcome = Callable[[Mapping], Optional[Bucket]]

BUCKET_RULES: Tuple[Tuple[str, Predicate, Outcome], ...] = (
    ("archived", _is_archived, lambda doc: None),
    ("retention-expired", _is_retention_expired, lambda doc: None),
    ("terminal", _is_terminal, lambda doc: Bucket(_status(doc))),
    ("live", _is_live, lambda doc: Bucket.LIVE),
    ("past-due", _is_past_due, lambda doc: Bucket.ATTENTION),
    ("today", _departs_later_today, lambda doc: Bucket.TODAY),
    ("upcoming", _departs_later, lambda doc: Bucket.UPCOMING),
)
# An active instance that departed less than past_due_hours ago matches no
# rule and stays hidden until it turns into ATTENTION.


def matching_rule(instance: Mapping, now: datetime, rules: BucketRules = DEFAULT_RULES) -> Optional[str]:
    now = clock.to_datetime(now)
    for name, predicate, _ in BUCKET_RULES:
        if predicate(instance, now, rules):
            return name
    return None


def classify(instance: Mapping, now: datetime, rules: BucketRules = DEFAULT_RULES) -> Optional[Bucket]:
    now = clock.to_datetime(now)
    for _, predicate, outcome in BUCKET_RULES:
        if predicate(instance, now, rules):
            return outcome(instance)
    return None


def group_by_bucket(
    instances: Iterable[Mapping],
    now: datetime,
    rules: BucketRules = DEFAULT_RULES,
) -> Dict[Bucket, List[Mapping]]:
    grouped: Dict[Bucket, List[Mapping]] = {bucket: [] for bucket in BUCKET_ORDER}
    for instance in instances:
        bucket = classify(instance, now, rules)
        if bucket is not None:
            grouped[bucket].append(instance)
    for bucket, members in grouped.items():
        members.sort(key=_departure, reverse=bucket in NEWEST_FIRST)
    return grouped


def summarize(
    instances: Iterable[Mapping],
    grouped: Mapping[Bucket, List[Mapping]],
    templates: Iterable[Mapping] = (),
) -> Dict[str, int]:
    """Dashboard counts. ``total_seats`` covers every active instance, hidden ones included."""
    return {
        "live": len(grouped.get(Bucket.LIVE, [])),
        "today": len(grouped.get(Bucket.TODAY, [])),
        "upcoming": len(grouped.get(Bucket.UPCOMING, [])),
        "attention": len(grouped.get(Bucket.ATTENTION, [])),
        "templates": sum(1 for tpl in templates if tpl.get("is_active")),
        "total_seats": sum(
            doc.get("available_seats", 0) or 0
            for doc in instances
            if _status(doc) == InstanceStatus.ACTIVE.value
        ),
    }
