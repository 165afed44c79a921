# marketplace/services/booking_commit.py
"""
Booking commit path.

Slot queries are advisory: the offered list can be stale by the time a
client submits a start time. Here the same generator check runs again
inside the transaction that inserts the booking:

1. lock the provider row (UPDATE of users.booking_version)
2. reload bookings/exceptions/settings/rules straight from the database
3. regenerate slots and require the chosen start among them
4. insert the booking as pending + audit row

The UPDATE holds a row lock on PostgreSQL and the database write lock on
SQLite until commit, so a second commit for the provider waits and then
sees the first booking. The partial unique index on active
(provider_id, start_datetime) backs this up for identical starts.
Both failures surface as SlotUnavailableError (HTTP 409).
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from redis import Redis
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import InvalidRequestError, NotFoundError, PermissionDeniedError, SlotUnavailableError
from ..models.tables import (
    BookingAuditLog as DBBookingAuditLog,
    Bookings as DBBooking,
    Users as DBUser,
)
from .events import emit_event
from .slots.config import AvailabilityConfig, get_availability_config
from .slots.generator import generate_slots
from .slots.intervals import as_utc, to_db
from .slots.loader import load_constraints
from .slots.queries import get_active_service

logger = logging.getLogger(__name__)

NON_CANCELLABLE = {
    "cancelled": "Booking is already cancelled",
    "completed": "Cannot cancel completed bookings",
    "disputed": "Cannot cancel disputed bookings",
}


def commit_booking(
    db: Session,
    client_id: int,
    service_id: int,
    start_datetime: datetime,
    now: datetime,
    notes: Optional[str] = None,
    config: AvailabilityConfig | None = None,
    redis: Redis | None = None,
) -> DBBooking:
    """
    Create a pending booking for an offered slot, or raise.

    Args:
        redis: Used only to publish booking_created. The rule cache is
               bypassed: the re-check always reads the database.

    Raises:
        NotFoundError: service/provider unknown or inactive
        PermissionDeniedError: client account missing or inactive
        InvalidRequestError: provider booking their own service
        SlotUnavailableError: the slot is no longer bookable
    """
    config = config or get_availability_config()

    service = get_active_service(db, service_id)
    provider_id = service.provider_id

    client = db.get(DBUser, client_id)
    if not client or not client.is_active:
        raise PermissionDeniedError("Your account is not active")
    if client_id == provider_id:
        raise InvalidRequestError("Providers cannot book their own services")

    start = as_utc(start_datetime)
    end = start + timedelta(minutes=service.duration_minutes)
    local_date = start.astimezone(config.tzinfo).date()

    try:
        _lock_provider(db, provider_id)

        snapshot = load_constraints(db, provider_id, local_date, config, redis=None)
        result = generate_slots(snapshot, service.duration_minutes, now, config)
        if start not in result.slots:
            logger.warning(
                f"Rejected booking: provider={provider_id} service={service_id} "
                f"start={start.isoformat()} not available"
            )
            raise SlotUnavailableError()

        booking = DBBooking(
            client_id=client_id,
            provider_id=provider_id,
            service_id=service.id,
            start_datetime=to_db(start),
            end_datetime=to_db(end),
            status="pending",
            notes=notes,
        )
        db.add(booking)
        db.flush()

        _add_audit_log(
            db,
            booking_id=booking.id,
            user_id=client_id,
            action="created",
            new_status="pending",
            details={"service_id": service.id},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(
            f"Rejected booking: provider={provider_id} start={start.isoformat()} "
            f"claimed by a concurrent commit"
        )
        raise SlotUnavailableError()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(
        f"Booking {booking.id} created: provider={provider_id} client={client_id} "
        f"start={start.isoformat()}"
    )
    emit_event(redis, "booking_created", _event_payload(booking))
    return booking


def get_booking_for_user(db: Session, booking_id: int, user_id: int) -> DBBooking:
    """Booking visible to its client or provider."""
    booking = db.get(DBBooking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if user_id not in (booking.client_id, booking.provider_id):
        raise PermissionDeniedError("You can only access your own bookings")
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    user_id: int,
    reason: Optional[str] = None,
    redis: Redis | None = None,
) -> DBBooking:
    """
    Cancel a booking as its client or provider.

    A cancelled booking no longer occupies time, so its slot becomes
    bookable again on the next query.
    """
    booking = get_booking_for_user(db, booking_id, user_id)

    message = NON_CANCELLABLE.get(booking.status)
    if message:
        raise InvalidRequestError(message)

    cancelled_by = "client" if booking.client_id == user_id else "provider"
    booking.status = "cancelled"
    booking.cancel_reason = reason
    booking.updated_at = func.now()

    _add_audit_log(
        db,
        booking_id=booking.id,
        user_id=user_id,
        action="cancelled",
        new_status="cancelled",
        details={"cancelled_by": cancelled_by, "reason": reason},
    )
    db.commit()
    db.refresh(booking)

    logger.info(f"Booking {booking.id} cancelled by {cancelled_by} {user_id}")
    emit_event(
        redis,
        "booking_cancelled",
        {**_event_payload(booking), "cancelled_by": cancelled_by},
    )
    return booking


# ── Helpers ──────────────────────────────────────────────────────────────


def _lock_provider(db: Session, provider_id: int) -> None:
    """
    Serialize commits per provider for the rest of the transaction.

    A write, not SELECT ... FOR UPDATE: SQLite drops FOR UPDATE and pysqlite
    only opens the write transaction at the first DML statement, so the
    re-check reads must come after a write to be protected.
    """
    updated = (
        db.query(DBUser)
        .filter(DBUser.id == provider_id)
        .update(
            {DBUser.booking_version: DBUser.booking_version + 1},
            synchronize_session=False,
        )
    )
    if not updated:
        raise NotFoundError("Service provider not found")


def _add_audit_log(
    db: Session,
    booking_id: int,
    user_id: Optional[int],
    action: str,
    new_status: Optional[str] = None,
    details: Optional[dict] = None,
) -> DBBookingAuditLog:
    """Create a booking audit record in the current transaction."""
    entry = DBBookingAuditLog(
        booking_id=booking_id,
        user_id=user_id,
        action=action,
        new_status=new_status,
        details=json.dumps(details) if details is not None else None,
    )
    db.add(entry)
    return entry


def _event_payload(booking: DBBooking) -> dict:
    return {
        "booking_id": booking.id,
        "provider_id": booking.provider_id,
        "client_id": booking.client_id,
        "service_id": booking.service_id,
        "start_datetime": as_utc(booking.start_datetime).isoformat(),
        "status": booking.status,
    }
