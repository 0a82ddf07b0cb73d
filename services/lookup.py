# services/lookup.py
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database

from utils.errors import NotFoundError

logger = logging.getLogger(__name__)


def id_filter(raw_id: str) -> Dict[str, Any]:
    """Routes and buses are owned by other services; their ids may be ObjectIds or plain strings."""
    if ObjectId.is_valid(raw_id):
        return {"_id": {"$in": [ObjectId(raw_id), raw_id]}}
    return {"_id": raw_id}


class FleetLookup:
    """Read-only, cached view of the route and bus collections."""

    def __init__(self, db: Database):
        self._db = db
        self._routes: Dict[str, Optional[dict]] = {}
        self._buses: Dict[str, Optional[dict]] = {}

    def _find(self, collection: str, cache: Dict[str, Optional[dict]], raw_id: str) -> Optional[dict]:
        if raw_id not in cache:
            cache[raw_id] = self._db[collection].find_one(id_filter(raw_id))
        return cache[raw_id]

    def route(self, route_id: str) -> dict:
        route = self._find("routes", self._routes, route_id)
        if route is None:
            raise NotFoundError(f"Route {route_id} not found")
        return route

    def bus(self, bus_id: str) -> dict:
        bus = self._find("buses", self._buses, bus_id)
        if bus is None:
            raise NotFoundError(f"Bus {bus_id} not found")
        return bus

    def route_snapshot(self, route_id: str) -> dict:
        route = self._find("routes", self._routes, route_id)
        if route is None:
            logger.warning(f"Route {route_id} not found, instances get an empty location snapshot")
            route = {}
        return {
            "departure_location": route.get("origin", ""),
            "arrival_location": route.get("destination", ""),
            "stops": list(route.get("stops", [])),
        }
