# models/schedule.py
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class InstanceStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MISSED = "missed"
    ARCHIVED = "archived"


class TripStatus(str, Enum):
    # written by the conductor app, only read here
    SCHEDULED = "scheduled"
    BOARDING = "boarding"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"


class Bucket(str, Enum):
    LIVE = "live"
    ATTENTION = "attention"
    TODAY = "today"
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MISSED = "missed"


TERMINAL_STATUSES = frozenset({
    InstanceStatus.COMPLETED.value,
    InstanceStatus.CANCELLED.value,
    InstanceStatus.MISSED.value,
})


class OneOffScheduleCreate(BaseModel):
    organization_id: str
    route_id: str
    bus_id: str
    departure_datetime: datetime
    arrival_datetime: datetime
    price: float = Field(gt=0)
    available_seats: int = Field(gt=0)

    @model_validator(mode="after")
    def check_arrival_after_departure(self):
        if self.arrival_datetime <= self.departure_datetime:
            raise ValueError("arrival_datetime must be after departure_datetime")
        return self


class StatusChange(BaseModel):
    status: Literal["completed", "cancelled", "missed"]


class ScheduleOut(BaseModel):
    id: str
    organization_id: str
    route_id: str
    bus_id: str
    template_id: Optional[str] = None
    departure_datetime: datetime
    arrival_datetime: datetime
    departure_location: str = ""
    arrival_location: str = ""
    stops: list = []
    price: float
    available_seats: int
    booked_seats: List[Union[int, str]] = []      # seat ids as the booking side stores them
    status: InstanceStatus
    trip_status: TripStatus = TripStatus.SCHEDULED
    status_changed_at: Optional[datetime] = None
    attention_flagged_at: Optional[datetime] = None
    bucket: Optional[Bucket] = None
    seconds_until_missed: Optional[int] = None


class MaterializeOut(BaseModel):
    created: int
    refreshed: int
    skipped_templates: List[str] = []
    window_days: int
    message: str
