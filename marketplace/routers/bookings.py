# marketplace/routers/bookings.py
# PATCH = 405, DELETE = 405 (cancel via POST /bookings/{id}/cancel)

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_current_user_id, get_now, get_redis
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
)
from ..services.booking_commit import cancel_booking, commit_booking, get_booking_for_user
from ..services.slots import get_availability_config

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """
    Book an offered slot.

    409 means the slot was taken or became invalid since it was listed:
    re-query availability and pick again.
    """
    return commit_booking(
        db=db,
        client_id=user_id,
        service_id=data.service_id,
        start_datetime=data.start_datetime,
        now=now,
        notes=data.notes,
        config=get_availability_config(),
        redis=redis,
    )


@router.get("/{id}", response_model=BookingRead)
def get_booking(
    id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_booking_for_user(db, id, user_id)


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel(
    id: int,
    data: BookingCancel | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    return cancel_booking(
        db=db,
        booking_id=id,
        user_id=user_id,
        reason=data.reason if data else None,
        redis=redis,
    )


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
