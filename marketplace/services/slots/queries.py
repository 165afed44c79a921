# marketplace/services/slots/queries.py
"""
Read-only availability views over the slot generator.

Schedule view: provider's own day (slots + bookings + exceptions).
Service view: bookable starts for one service, duration-aware.
"""

import json
from datetime import date, datetime, timedelta
from redis import Redis
from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models.tables import Services as DBService, Users as DBUser
from .config import AvailabilityConfig, get_availability_config
from .generator import generate_slots
from .loader import load_constraints


def get_provider_schedule(
    db: Session,
    provider_id: int,
    target_date: date,
    now: datetime,
    config: AvailabilityConfig | None = None,
    redis: Redis | None = None,
) -> dict:
    """
    Provider day schedule (for DayScheduleResponse).

    Slots use the display duration from config; bookings and exceptions
    are reported as loaded, whatever their effect on slots.
    """
    config = config or get_availability_config()

    snapshot = load_constraints(db, provider_id, target_date, config, redis)
    result = generate_slots(snapshot, config.schedule_slot_minutes, now, config)
    display = timedelta(minutes=config.schedule_slot_minutes)

    return {
        "date": target_date,
        "available_slots": [
            {"start_time": slot, "end_time": slot + display}
            for slot in result.slots
        ],
        "bookings": [
            {
                "id": b.id,
                "start_time": b.range.start,
                "end_time": b.range.end,
                "status": b.status,
            }
            for b in result.bookings
        ],
        "exceptions": [
            {
                "id": e.id,
                "start_time": e.range.start,
                "end_time": e.range.end,
                "type": e.type,
            }
            for e in result.exceptions
        ],
    }


def get_service_slots(
    db: Session,
    service_id: int,
    target_date: date,
    now: datetime,
    config: AvailabilityConfig | None = None,
    redis: Redis | None = None,
) -> dict:
    """
    Bookable starts for a service (for ServiceSlotsResponse).

    Raises:
        NotFoundError: service unknown/inactive, or its provider is
                       missing/inactive.
    """
    config = config or get_availability_config()

    service = get_active_service(db, service_id)
    snapshot = load_constraints(db, service.provider_id, target_date, config, redis)
    result = generate_slots(snapshot, service.duration_minutes, now, config)

    return {
        "service_id": service.id,
        "provider_id": service.provider_id,
        "date": target_date,
        "duration_minutes": service.duration_minutes,
        "slots": result.slots,
        "location_types": _parse_location_types(service.location_types),
        "base_price_pence": service.base_price_pence,
        "travel_fee_pence": service.travel_fee_pence,
        "materials_fee_pence": service.materials_fee_pence,
        "materials_policy": service.materials_policy,
    }


def get_active_service(db: Session, service_id: int) -> DBService:
    """Active service whose provider is an active provider account."""
    service = (
        db.query(DBService)
        .filter(DBService.id == service_id, DBService.is_active.is_(True))
        .first()
    )
    if not service:
        raise NotFoundError("Service not found or not active")

    provider = db.get(DBUser, service.provider_id)
    if not provider or not provider.is_active or provider.role != "provider":
        raise NotFoundError("Service provider not found")

    return service


def _parse_location_types(raw) -> list[str]:
    if isinstance(raw, list):
        return raw
    try:
        value = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []
