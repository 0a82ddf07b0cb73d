# services/monitor.py
"""Unattended transition of neglected trips to ``missed``.

The first observation of an instance in the attention bucket is persisted on
the instance itself (``attention_flagged_at``) with a first-writer-wins update,
so every worker, API process and restart sees the same deadline.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from models.schedule import Bucket, InstanceStatus
from services import clock
from services.classifier import DEFAULT_RULES, BucketRules, classify
from services.transitions import apply_status
from utils.errors import ConflictError, ScheduleEngineError
from utils.logging_config import organization_context

logger = logging.getLogger(__name__)


@dataclass
class MonitorReport:
    organization_id: str
    flagged: List[str] = field(default_factory=list)
    missed: List[str] = field(default_factory=list)
    cleared: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def seconds_until_missed(instance: Mapping, now: datetime, rules: BucketRules = DEFAULT_RULES) -> Optional[int]:
    flagged_at = instance.get("attention_flagged_at")
    if not flagged_at:
        return None
    remaining = rules.auto_missed - clock.elapsed(flagged_at, now)
    return max(0, int(remaining.total_seconds()))


def attention_set(db: Database, organization_id: str, now: datetime, rules: BucketRules = DEFAULT_RULES) -> List[dict]:
    candidates = db.schedules.find({"organization_id": organization_id, "status": InstanceStatus.ACTIVE.value})
    return sorted(
        (doc for doc in candidates if classify(doc, now, rules) == Bucket.ATTENTION),
        key=lambda doc: clock.to_datetime(doc["departure_datetime"]),
    )


class AutoTransitionMonitor:
    def __init__(self, db: Database, rules: BucketRules = DEFAULT_RULES):
        self.db = db
        self.rules = rules

    def tick(self, organization_id: str, now: Optional[datetime] = None) -> MonitorReport:
        with organization_context(organization_id):
            return self._scan(organization_id, now)

    def _scan(self, organization_id: str, now: Optional[datetime]) -> MonitorReport:
        now = clock.to_datetime(now or clock.utcnow())
        report = MonitorReport(organization_id)
        try:
            active = list(self.db.schedules.find(
                {"organization_id": organization_id, "status": InstanceStatus.ACTIVE.value}
            ))
        except PyMongoError as exc:
            logger.warning(f"Monitor tick for {organization_id} could not read schedules: {exc}")
            return report

        for instance in active:
            if classify(instance, now, self.rules) == Bucket.ATTENTION:
                self._watch(instance, now, report)
            elif instance.get("attention_flagged_at"):
                self._clear(instance, report)

        if report.flagged or report.missed or report.failed:
            logger.info(
                f"Monitor {organization_id}: {len(report.flagged)} flagged, "
                f"{len(report.missed)} marked missed, {len(report.failed)} failed"
            )
        return report

    def _watch(self, instance: dict, now: datetime, report: MonitorReport) -> None:
        instance_id = instance["_id"]
        flagged_at = instance.get("attention_flagged_at")
        try:
            if not flagged_at:
                result = self.db.schedules.update_one(
                    {"_id": instance_id, "status": InstanceStatus.ACTIVE.value, "attention_flagged_at": None},
                    {"$set": {"attention_flagged_at": clock.to_storage(now)}},
                )
                if result.modified_count:
                    report.flagged.append(instance_id)
                return
            if clock.elapsed(flagged_at, now) < self.rules.auto_missed:
                return
            if apply_status(self.db, instance_id, InstanceStatus.MISSED.value, now=now, rules=self.rules):
                report.missed.append(instance_id)
        except ConflictError as exc:
            # someone acted on it in the meantime
            logger.info(f"Skipping {instance_id}: {exc}")
        except (ScheduleEngineError, PyMongoError) as exc:
            logger.warning(f"Auto-transition of {instance_id} failed, retrying next tick: {exc}")
            report.failed.append(instance_id)

    def _clear(self, instance: dict, report: MonitorReport) -> None:
        try:
            self.db.schedules.update_one({"_id": instance["_id"]}, {"$unset": {"attention_flagged_at": ""}})
            report.cleared.append(instance["_id"])
        except PyMongoError as exc:
            logger.warning(f"Could not clear attention flag on {instance['_id']}: {exc}")
