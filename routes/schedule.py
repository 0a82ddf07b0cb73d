# routes/schedule.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from config import settings
from database import get_db
from models.schedule import Bucket, MaterializeOut, OneOffScheduleCreate, ScheduleOut, StatusChange
from services import clock, template_store, transitions
from services.classifier import BUCKET_ORDER, classify, group_by_bucket, summarize
from services.materializer import Materializer
from services.monitor import AutoTransitionMonitor, attention_set, seconds_until_missed
from utils.auth import get_actor_id
from utils.documents import document_out

router = APIRouter()


def schedule_out(doc: dict, now) -> dict:
    out = document_out(doc)
    bucket = classify(doc, now)
    out["bucket"] = bucket
    out["seconds_until_missed"] = seconds_until_missed(doc, now) if bucket == Bucket.ATTENTION else None
    return out


@router.post("/materialize", response_model=MaterializeOut)
async def materialize_schedules(
    organization_id: str = Query(...),
    db: Database = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    result = Materializer(db).materialize(organization_id, created_by=actor_id)
    return {
        "created": result.created,
        "refreshed": result.refreshed,
        "skipped_templates": result.skipped_templates,
        "window_days": settings.window_days,
        "message": f"Generated {result.created} schedule instances for the next {settings.window_days} days",
    }


@router.get("/", response_model=dict)
async def get_grouped_schedules(
    organization_id: str = Query(...),
    db: Database = Depends(get_db),
):
    now = clock.utcnow()
    instances = list(db.schedules.find({"organization_id": organization_id, "status": {"$ne": "archived"}}))
    grouped = group_by_bucket(instances, now)
    templates = template_store.list_templates(db, organization_id)
    return {
        "buckets": {bucket.value: [schedule_out(doc, now) for doc in grouped[bucket]] for bucket in BUCKET_ORDER},
        "stats": summarize(instances, grouped, templates),
    }


@router.get("/attention", response_model=List[ScheduleOut])
async def get_attention_schedules(
    organization_id: str = Query(...),
    db: Database = Depends(get_db),
):
    now = clock.utcnow()
    return [schedule_out(doc, now) for doc in attention_set(db, organization_id, now)]


@router.post("/monitor/tick", response_model=dict)
async def run_monitor_tick(
    organization_id: str = Query(...),
    db: Database = Depends(get_db),
):
    report = AutoTransitionMonitor(db).tick(organization_id)
    return {
        "flagged": report.flagged,
        "missed": report.missed,
        "cleared": report.cleared,
        "failed": report.failed,
    }


@router.post("/", response_model=ScheduleOut, status_code=201)
async def create_one_off_schedule(
    schedule_in: OneOffScheduleCreate,
    db: Database = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    doc = transitions.create_one_off(db, schedule_in, created_by=actor_id)
    return schedule_out(doc, clock.utcnow())


@router.get("/{id}", response_model=ScheduleOut)
async def get_schedule(id: str, db: Database = Depends(get_db)):
    return schedule_out(transitions.get_instance(db, id), clock.utcnow())


@router.put("/{id}/status")
async def update_schedule_status(id: str, change: StatusChange, db: Database = Depends(get_db)):
    changed = transitions.apply_status(db, id, change.status)
    if not changed:
        return {"message": f"Schedule already {change.status}"}
    return {"message": f"Schedule marked as {change.status}"}


@router.put("/{id}/archive")
async def archive_schedule(id: str, db: Database = Depends(get_db)):
    changed = transitions.archive(db, id)
    return {"message": "Schedule archived" if changed else "Schedule already archived"}
