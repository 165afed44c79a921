# marketplace/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import Field

from .common import CamelModel, UtcDatetime


class BookingCreate(CamelModel):
    service_id: int
    start_datetime: UtcDatetime
    notes: Optional[str] = Field(default=None, max_length=1000)


class BookingCancel(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingRead(CamelModel):
    id: int

    client_id: int
    provider_id: int
    service_id: int

    start_datetime: UtcDatetime
    end_datetime: UtcDatetime

    status: str
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime
