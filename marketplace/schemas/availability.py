# marketplace/schemas/availability.py

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator, model_validator

from ..services.slots.config import minutes_to_time_str, time_str_to_minutes
from .common import CamelModel, UtcDatetime


# ── Weekly rules ─────────────────────────────────────────────────────────


class RuleCreate(CamelModel):
    day_of_week: int = Field(ge=0, le=6, description="0 = Monday, 6 = Sunday")
    start_time: str = Field(description="HH:MM, local provider time")
    end_time: str = Field(description="HH:MM, local provider time; 24:00 = end of day")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate time format and normalize to HH:MM."""
        return minutes_to_time_str(time_str_to_minutes(v))

    @model_validator(mode="after")
    def validate_order(self):
        if time_str_to_minutes(self.end_time) <= time_str_to_minutes(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self


class RulesReplace(CamelModel):
    rules: list[RuleCreate]


class RuleRead(CamelModel):
    id: int
    provider_id: int
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


# ── Exceptions ───────────────────────────────────────────────────────────


class ExceptionCreate(CamelModel):
    start_datetime: UtcDatetime
    end_datetime: UtcDatetime
    type: str = Field(default="blocked", min_length=1, max_length=32)
    reason: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def validate_order(self):
        if self.end_datetime <= self.start_datetime:
            raise ValueError("endDatetime must be after startDatetime")
        return self


class ExceptionRead(CamelModel):
    id: int
    provider_id: int
    start_datetime: UtcDatetime
    end_datetime: UtcDatetime
    type: str
    reason: Optional[str] = None
    created_at: datetime


# ── Settings ─────────────────────────────────────────────────────────────


class SettingsUpdate(CamelModel):
    min_lead_time_hours: int = Field(default=0, ge=0)
    max_bookings_per_day: Optional[int] = Field(default=None, ge=1)


class SettingsRead(CamelModel):
    provider_id: int
    min_lead_time_hours: int = 0
    max_bookings_per_day: Optional[int] = None
