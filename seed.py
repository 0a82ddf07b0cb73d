# seed.py
"""Demo data: wipes routes, buses, templates and schedules, then materializes."""

from datetime import date, timedelta

from database import buses, db, routes, schedule_templates, schedules
from models.template import TemplateCreate
from services.materializer import materialize
from services.template_store import create_template, days_label

ORGANIZATION_ID = "demo-coaches"
SEED_USER = "seed-script"

# === CLEAR OLD DATA ===
routes.delete_many({})
buses.delete_many({})
schedule_templates.delete_many({})
schedules.delete_many({})

print("Old demo data removed\n")

# ================== 1. ROUTES & BUSES ==================
route_ids = routes.insert_many([
    {
        "organization_id": ORGANIZATION_ID,
        "origin": "Lilongwe",
        "destination": "Blantyre",
        "stops": ["Dedza", "Ntcheu", "Balaka"],
    },
    {
        "organization_id": ORGANIZATION_ID,
        "origin": "Blantyre",
        "destination": "Lilongwe",
        "stops": ["Balaka", "Ntcheu", "Dedza"],
    },
    {
        "organization_id": ORGANIZATION_ID,
        "origin": "Lilongwe",
        "destination": "Mzuzu",
        "stops": ["Kasungu", "Jenda"],
    },
]).inserted_ids

bus_ids = buses.insert_many([
    {"organization_id": ORGANIZATION_ID, "license_plate": "LL 4521", "bus_type": "Express", "capacity": 60},
    {"organization_id": ORGANIZATION_ID, "license_plate": "BT 1180", "bus_type": "Standard", "capacity": 45},
]).inserted_ids

print(f"{len(route_ids)} routes, {len(bus_ids)} buses")

# ================== 2. TEMPLATES ==================
today = date.today()
templates = [
    # weekday morning express
    dict(route_id=str(route_ids[0]), bus_id=str(bus_ids[0]), departure_time="07:00", arrival_time="11:30",
         days_of_week=[1, 2, 3, 4, 5], price=18000, available_seats=60),
    # daily return
    dict(route_id=str(route_ids[1]), bus_id=str(bus_ids[0]), departure_time="14:00", arrival_time="18:30",
         days_of_week=[], price=18000, available_seats=60),
    # weekend overnight run
    dict(route_id=str(route_ids[2]), bus_id=str(bus_ids[1]), departure_time="23:30", arrival_time="05:00",
         days_of_week=[0, 6], price=22000, available_seats=45, valid_until=today + timedelta(days=60)),
]

for data in templates:
    template = TemplateCreate(organization_id=ORGANIZATION_ID, valid_from=today, **data)
    create_template(db, template, created_by=SEED_USER)
    print(f"  template {template.departure_time} -> {template.arrival_time} ({days_label(template.days_of_week)})")

# ================== 3. MATERIALIZE ==================
result = materialize(db, ORGANIZATION_ID, created_by=SEED_USER)
print(f"\n{result.created} schedule instances created for {ORGANIZATION_ID}")
