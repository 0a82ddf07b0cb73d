# models/template.py
import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_time(value: str) -> str:
    if not TIME_OF_DAY.match(value):
        raise ValueError(f"time must be HH:MM (24h), got {value!r}")
    return value


def _check_days(days: List[int]) -> List[int]:
    invalid = [d for d in days if d < 0 or d > 6]
    if invalid:
        raise ValueError(f"days_of_week must be 0 (Sunday) .. 6 (Saturday), got {invalid}")
    return sorted(set(days))


class TemplateCreate(BaseModel):
    organization_id: str
    route_id: str
    bus_id: str
    departure_time: str                          # "HH:MM"
    arrival_time: str                            # "HH:MM", earlier than departure = overnight
    days_of_week: List[int] = Field(default_factory=list)   # [] runs every day
    valid_from: date
    valid_until: Optional[date] = None
    price: float = Field(gt=0)
    available_seats: int = Field(gt=0)
    is_active: bool = True

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def check_times(cls, value: str) -> str:
        return _check_time(value)

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, days: List[int]) -> List[int]:
        return _check_days(days)

    @model_validator(mode="after")
    def check_validity_window(self):
        if self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValueError("valid_until cannot be before valid_from")
        return self


class TemplateUpdate(BaseModel):
    route_id: Optional[str] = None
    bus_id: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    days_of_week: Optional[List[int]] = None
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    price: Optional[float] = Field(default=None, gt=0)
    available_seats: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class TemplateOut(BaseModel):
    id: str
    organization_id: str
    route_id: str
    bus_id: str
    departure_time: str
    arrival_time: str
    days_of_week: List[int]
    days_label: str
    valid_from: date
    valid_until: Optional[date] = None
    price: float
    available_seats: int
    is_active: bool
    status: str                                  # active | inactive
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
