# marketplace/services/calendar.py
"""
Provider calendar over a date range, and its iCalendar export.

Range view: every non-cancelled booking plus every exception overlapping
[start_date 00:00, end_date + 1 day 00:00) in the calendar zone.

iCal export: confirmed/completed bookings starting between the first day of
last month and the end of the fifth month ahead.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from ..errors import InvalidRequestError
from ..models.tables import (
    AvailabilityExceptions as DBAvailabilityException,
    Bookings as DBBooking,
    Services as DBService,
    Users as DBUser,
)
from .slots.config import AvailabilityConfig, get_availability_config
from .slots.intervals import as_utc, to_db

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 93

STATUS_COLORS = {
    "pending": "#FFA500",
    "confirmed": "#22C55E",
    "completed": "#3B82F6",
    "disputed": "#EF4444",
}
DEFAULT_COLOR = "#6B7280"
BLOCKED_COLOR = "#9CA3AF"

ICAL_STATUSES = ("confirmed", "completed")


def get_provider_calendar(
    db: Session,
    provider_id: int,
    start_date: date,
    end_date: date,
    config: AvailabilityConfig | None = None,
) -> dict:
    """
    Calendar events for a provider (for CalendarResponse).

    Raises:
        InvalidRequestError: end before start, or range too long
    """
    if end_date < start_date:
        raise InvalidRequestError("endDate must not be before startDate")
    if (end_date - start_date).days >= MAX_RANGE_DAYS:
        raise InvalidRequestError(f"Calendar range is limited to {MAX_RANGE_DAYS} days")

    config = config or get_availability_config()
    range_start, range_end = _local_range(start_date, end_date + timedelta(days=1), config)

    events = []
    blocked_slots = []

    for booking, service_title, first_name, last_name in _query_bookings(
        db, provider_id, range_start, range_end
    ):
        events.append({
            "id": f"booking-{booking.id}",
            "type": "booking",
            "title": service_title,
            "start": as_utc(booking.start_datetime),
            "end": as_utc(booking.end_datetime),
            "status": booking.status,
            "client_name": _full_name(first_name, last_name),
            "service_title": service_title,
            "booking_id": booking.id,
            "color": STATUS_COLORS.get(booking.status, DEFAULT_COLOR),
        })

    exceptions = (
        db.query(DBAvailabilityException)
        .filter(
            DBAvailabilityException.provider_id == provider_id,
            DBAvailabilityException.start_datetime < to_db(range_end),
            DBAvailabilityException.end_datetime > to_db(range_start),
        )
        .order_by(DBAvailabilityException.start_datetime)
        .all()
    )
    for e in exceptions:
        start, end = as_utc(e.start_datetime), as_utc(e.end_datetime)
        is_blocked = e.type == "blocked"
        events.append({
            "id": f"{'blocked' if is_blocked else 'exception'}-{e.id}",
            "type": "blocked" if is_blocked else "exception",
            "title": e.reason or ("Blocked" if is_blocked else e.type.title()),
            "start": start,
            "end": end,
            "color": BLOCKED_COLOR,
        })
        if is_blocked:
            blocked_slots.append({"start": start, "end": end, "reason": e.reason})

    events.sort(key=lambda ev: ev["start"])

    return {
        "start_date": start_date,
        "end_date": end_date,
        "events": events,
        "blocked_slots": blocked_slots,
    }


# ── iCal ─────────────────────────────────────────────────────────────────


def build_provider_ical(
    db: Session,
    provider_id: int,
    now: datetime,
    config: AvailabilityConfig | None = None,
) -> str:
    """Provider bookings as an RFC 5545 VCALENDAR document."""
    config = config or get_availability_config()

    today = as_utc(now).astimezone(config.tzinfo).date()
    this_month = today.replace(day=1)
    range_start, range_end = _local_range(
        _add_months(this_month, -1), _add_months(this_month, 6), config
    )

    rows = _query_bookings(db, provider_id, range_start, range_end, statuses=ICAL_STATUSES)
    stamp = _ical_datetime(now)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Marketplace//Availability//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "X-WR-CALNAME:Bookings",
    ]
    for booking, service_title, first_name, last_name in rows:
        client_name = _full_name(first_name, last_name)
        description = f"Client: {client_name}"
        if booking.notes:
            description += f"\nNotes: {booking.notes}"

        lines += [
            "BEGIN:VEVENT",
            f"UID:booking-{booking.id}@marketplace",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_ical_datetime(booking.start_datetime)}",
            f"DTEND:{_ical_datetime(booking.end_datetime)}",
            f"SUMMARY:{_ical_text(f'{service_title} - {client_name}')}",
            f"DESCRIPTION:{_ical_text(description)}",
            "STATUS:CONFIRMED",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")

    logger.info(f"iCal export for provider {provider_id}: {len(rows)} bookings")
    return "".join(_fold(line) + "\r\n" for line in lines)


# ── Helpers ──────────────────────────────────────────────────────────────


def _query_bookings(
    db: Session,
    provider_id: int,
    range_start: datetime,
    range_end: datetime,
    statuses: tuple[str, ...] | None = None,
) -> list:
    query = (
        db.query(DBBooking, DBService.title, DBUser.first_name, DBUser.last_name)
        .join(DBService, DBBooking.service_id == DBService.id)
        .join(DBUser, DBBooking.client_id == DBUser.id)
        .filter(
            DBBooking.provider_id == provider_id,
            DBBooking.start_datetime < to_db(range_end),
            DBBooking.end_datetime > to_db(range_start),
        )
    )
    if statuses is None:
        query = query.filter(DBBooking.status != "cancelled")
    else:
        query = query.filter(DBBooking.status.in_(statuses))
    return query.order_by(DBBooking.start_datetime).all()


def _local_range(first: date, end: date, config: AvailabilityConfig) -> tuple[datetime, datetime]:
    """[first 00:00, end 00:00) in the calendar zone, as aware UTC."""
    tz = config.tzinfo
    return (
        as_utc(datetime.combine(first, time.min, tzinfo=tz)),
        as_utc(datetime.combine(end, time.min, tzinfo=tz)),
    )


def _add_months(first_of_month: date, months: int) -> date:
    years, month_index = divmod(first_of_month.month - 1 + months, 12)
    return date(first_of_month.year + years, month_index + 1, 1)


def _full_name(first_name: str, last_name: str | None) -> str:
    return f"{first_name} {last_name or ''}".strip()


def _ical_datetime(dt: datetime) -> str:
    return as_utc(dt).strftime("%Y%m%dT%H%M%SZ")


def _ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def _fold(line: str, width: int = 75) -> str:
    """Content lines longer than 75 characters continue on lines starting with a space."""
    if len(line) <= width:
        return line
    parts = [line[:width]]
    rest = line[width:]
    while rest:
        parts.append(" " + rest[:width - 1])
        rest = rest[width - 1:]
    return "\r\n".join(parts)
