# marketplace/schemas/calendar.py

from datetime import date
from typing import Optional

from .common import CamelModel, UtcDatetime


class CalendarEvent(CamelModel):
    id: str
    type: str  # booking | blocked | exception
    title: str
    start: UtcDatetime
    end: UtcDatetime
    status: Optional[str] = None
    client_name: Optional[str] = None
    service_title: Optional[str] = None
    booking_id: Optional[int] = None
    color: Optional[str] = None


class BlockedSlot(CamelModel):
    start: UtcDatetime
    end: UtcDatetime
    reason: Optional[str] = None


class CalendarResponse(CamelModel):
    start_date: date
    end_date: date
    view: str
    events: list[CalendarEvent]
    blocked_slots: list[BlockedSlot]
