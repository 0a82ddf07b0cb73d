# database.py
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

client = MongoClient(settings.mongodb_uri)
db = client[settings.mongodb_db]

# Collections
schedule_templates = db.schedule_templates
schedules = db.schedules
routes = db.routes
buses = db.buses


def get_db() -> Database:
    return db


def ensure_indexes(database: Database) -> None:
    database.schedule_templates.create_index([("organization_id", ASCENDING), ("is_active", ASCENDING)])
    database.schedules.create_index([("organization_id", ASCENDING), ("status", ASCENDING)])
    database.schedules.create_index([("template_id", ASCENDING), ("departure_datetime", ASCENDING)])
