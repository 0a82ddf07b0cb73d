# utils/documents.py
from datetime import datetime, timezone

from bson import ObjectId


def convert_obj_id(obj):
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime) and obj.tzinfo is None:
        # Mongo returns naive UTC
        return obj.replace(tzinfo=timezone.utc)
    if isinstance(obj, dict):
        return {k: convert_obj_id(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [convert_obj_id(i) for i in obj]
    return obj


def document_out(doc: dict) -> dict:
    out = convert_obj_id(dict(doc))
    out["id"] = out.pop("_id")
    return out
