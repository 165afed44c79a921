# marketplace/schemas/slots.py
"""
Pydantic schemas for availability views.
"""

from datetime import date

from .common import CamelModel, UtcDatetime


class ScheduleSlot(CamelModel):
    """Open slot in the provider day view (display duration)."""
    start_time: UtcDatetime
    end_time: UtcDatetime


class ScheduleBooking(CamelModel):
    id: int
    start_time: UtcDatetime
    end_time: UtcDatetime
    status: str


class ScheduleException(CamelModel):
    id: int
    start_time: UtcDatetime
    end_time: UtcDatetime
    type: str


class DayScheduleResponse(CamelModel):
    """Provider's full day: open slots plus what occupies the rest."""
    date: date
    available_slots: list[ScheduleSlot]
    bookings: list[ScheduleBooking]
    exceptions: list[ScheduleException]


class ServiceSlotsResponse(CamelModel):
    """Bookable starts for one service on one date."""
    slots: list[UtcDatetime]

    # Metadata for the booking UI
    service_id: int
    provider_id: int
    date: date
    duration_minutes: int
    location_types: list[str] = []
    base_price_pence: int = 0
    travel_fee_pence: int = 0
    materials_fee_pence: int = 0
    materials_policy: str
