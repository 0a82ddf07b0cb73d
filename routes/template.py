# routes/template.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import get_db
from models.template import TemplateCreate, TemplateOut, TemplateUpdate
from services import clock, template_store
from utils.auth import get_actor_id
from utils.documents import document_out

router = APIRouter()


def template_out(doc: dict) -> dict:
    out = document_out(doc)
    out["valid_from"] = clock.to_date(out["valid_from"])
    out["valid_until"] = clock.to_date(out["valid_until"]) if out.get("valid_until") else None
    out["days_label"] = template_store.days_label(out.get("days_of_week") or [])
    return out


@router.post("/", response_model=TemplateOut, status_code=201)
async def create_template(
    template_in: TemplateCreate,
    db: Database = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    doc = template_store.create_template(db, template_in, created_by=actor_id)
    return template_out(doc)


@router.get("/", response_model=List[TemplateOut])
async def list_templates(
    organization_id: str = Query(...),
    active_only: bool = Query(False),
    db: Database = Depends(get_db),
):
    return [template_out(doc) for doc in template_store.list_templates(db, organization_id, active_only)]


@router.get("/{id}", response_model=TemplateOut)
async def get_template(id: str, db: Database = Depends(get_db)):
    return template_out(template_store.get_template(db, id))


@router.put("/{id}", response_model=TemplateOut)
async def update_template(id: str, changes: TemplateUpdate, db: Database = Depends(get_db)):
    return template_out(template_store.update_template(db, id, changes))


@router.patch("/{id}/toggle", response_model=TemplateOut)
async def toggle_template(id: str, db: Database = Depends(get_db)):
    return template_out(template_store.set_template_active(db, id))


@router.delete("/{id}")
async def delete_template(id: str, db: Database = Depends(get_db)):
    template_store.delete_template(db, id)
    return {"message": "Template deleted, existing schedules are not affected"}
