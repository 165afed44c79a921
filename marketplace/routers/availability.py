# marketplace/routers/availability.py
"""
Provider availability endpoints.

Provider id comes from the authenticated user (X-User-Id via gateway).

GET    /availability/schedule          - day view: slots + bookings + exceptions
GET    /availability/calendar          - bookings and exceptions over a date range
GET    /availability/ical              - iCalendar export of confirmed bookings
GET    /availability/rules             - active weekly rules
PUT    /availability/rules             - replace weekly rules (old ones soft-disabled)
GET    /availability/exceptions        - exceptions, optional date range
POST   /availability/exceptions        - add exception
DELETE /availability/exceptions/{id}   - hard delete
GET    /availability/settings          - lead time / day cap
PUT    /availability/settings          - upsert settings
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from redis import Redis
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_current_provider_id, get_now, get_redis
from ..models.tables import (
    AvailabilityExceptions as DBAvailabilityExceptions,
    AvailabilityRules as DBAvailabilityRules,
    ProviderAvailabilitySettings as DBProviderAvailabilitySettings,
)
from ..schemas.availability import (
    ExceptionCreate,
    ExceptionRead,
    RuleRead,
    RulesReplace,
    SettingsRead,
    SettingsUpdate,
)
from ..schemas.calendar import CalendarResponse
from ..schemas.slots import DayScheduleResponse
from ..services.calendar import build_provider_ical, get_provider_calendar
from ..services.slots import (
    get_availability_config,
    get_provider_schedule,
    invalidate_provider_rules,
)
from ..services.slots.intervals import to_db
from ..services.slots.loader import get_provider_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


# ── Schedule view ────────────────────────────────────────────────────────


@router.get("/schedule", response_model=DayScheduleResponse)
def get_schedule(
    target_date: date = Query(..., alias="date"),
    provider_id: int = Depends(get_current_provider_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Provider's own day: open slots, active bookings and exceptions."""
    result = get_provider_schedule(
        db=db,
        provider_id=provider_id,
        target_date=target_date,
        now=now,
        config=get_availability_config(),
        redis=redis,
    )
    return DayScheduleResponse(**result)



@router.get("/calendar", response_model=CalendarResponse)
def get_calendar(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    view: Literal["month", "week", "day"] = "month",
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    """Bookings (except cancelled) and exceptions between two local dates, inclusive."""
    result = get_provider_calendar(
        db=db,
        provider_id=provider_id,
        start_date=start_date,
        end_date=end_date,
        config=get_availability_config(),
    )
    return CalendarResponse(view=view, **result)


@router.get("/ical")
def export_ical(
    provider_id: int = Depends(get_current_provider_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    content = build_provider_ical(db, provider_id, now, get_availability_config())
    return Response(
        content=content,
        media_type="text/calendar",
        headers={
            "Content-Disposition": "attachment; filename=bookings.ics",
            "Cache-Control": "no-cache",
        },
    )


# ── Weekly rules ─────────────────────────────────────────────────────────


@router.get("/rules", response_model=list[RuleRead])
def list_rules(
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    return (
        db.query(DBAvailabilityRules)
        .filter(
            DBAvailabilityRules.provider_id == provider_id,
            DBAvailabilityRules.is_active.is_(True),
        )
        .order_by(DBAvailabilityRules.day_of_week, DBAvailabilityRules.start_time)
        .all()
    )


@router.put("/rules", response_model=list[RuleRead])
def replace_rules(
    data: RulesReplace,
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """
    Replace the weekly template.

    Existing active rules are soft-disabled (kept for history), then the
    submitted rules are inserted as active.
    """
    (
        db.query(DBAvailabilityRules)
        .filter(
            DBAvailabilityRules.provider_id == provider_id,
            DBAvailabilityRules.is_active.is_(True),
        )
        .update({DBAvailabilityRules.is_active: False}, synchronize_session=False)
    )

    objs = [
        DBAvailabilityRules(provider_id=provider_id, is_active=True, **rule.model_dump())
        for rule in data.rules
    ]
    db.add_all(objs)
    db.commit()
    for obj in objs:
        db.refresh(obj)

    invalidate_provider_rules(redis, provider_id)
    logger.info(f"Provider {provider_id} replaced weekly rules ({len(objs)} windows)")

    return sorted(objs, key=lambda r: (r.day_of_week, r.start_time))


# ── Exceptions ───────────────────────────────────────────────────────────


@router.get("/exceptions", response_model=list[ExceptionRead])
def list_exceptions(
    start_date: date | None = None,
    end_date: date | None = None,
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    """Exceptions overlapping [start_date 00:00, end_date 24:00), or all."""
    query = db.query(DBAvailabilityExceptions).filter(
        DBAvailabilityExceptions.provider_id == provider_id
    )

    if start_date or end_date:
        tz = get_availability_config().tzinfo
        if start_date:
            range_start = datetime.combine(start_date, time.min, tzinfo=tz)
            query = query.filter(DBAvailabilityExceptions.end_datetime > to_db(range_start))
        if end_date:
            range_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
            query = query.filter(DBAvailabilityExceptions.start_datetime < to_db(range_end))

    return query.order_by(DBAvailabilityExceptions.start_datetime).all()


@router.post(
    "/exceptions", response_model=ExceptionRead, status_code=status.HTTP_201_CREATED
)
def create_exception(
    data: ExceptionCreate,
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    obj = DBAvailabilityExceptions(
        provider_id=provider_id,
        start_datetime=to_db(data.start_datetime),
        end_datetime=to_db(data.end_datetime),
        type=data.type,
        reason=data.reason,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.delete("/exceptions/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(
    id: int,
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    obj = db.get(DBAvailabilityExceptions, id)
    if not obj or obj.provider_id != provider_id:
        raise HTTPException(status_code=404, detail="Not found")
    db.delete(obj)
    db.commit()


# ── Settings ─────────────────────────────────────────────────────────────


@router.get("/settings", response_model=SettingsRead)
def get_settings(
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    current = get_provider_settings(db, provider_id)
    return SettingsRead(
        provider_id=provider_id,
        min_lead_time_hours=current.min_lead_time_hours,
        max_bookings_per_day=current.max_bookings_per_day,
    )


@router.put("/settings", response_model=SettingsRead)
def update_settings(
    data: SettingsUpdate,
    provider_id: int = Depends(get_current_provider_id),
    db: Session = Depends(get_db),
):
    obj = (
        db.query(DBProviderAvailabilitySettings)
        .filter(DBProviderAvailabilitySettings.provider_id == provider_id)
        .first()
    )
    if not obj:
        obj = DBProviderAvailabilitySettings(provider_id=provider_id)
        db.add(obj)

    obj.min_lead_time_hours = data.min_lead_time_hours
    obj.max_bookings_per_day = data.max_bookings_per_day
    obj.updated_at = func.now()

    db.commit()
    db.refresh(obj)
    return obj
