# marketplace/routers/services.py
"""
Public service availability.

GET /services/{service_id}/availability?date=YYYY-MM-DD
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_now, get_redis
from ..schemas.slots import ServiceSlotsResponse
from ..services.slots import get_availability_config, get_service_slots


router = APIRouter(prefix="/services", tags=["services"])


@router.get("/{service_id}/availability", response_model=ServiceSlotsResponse)
def get_service_availability(
    service_id: int,
    target_date: date = Query(..., alias="date"),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Bookable start times for a service on a specific day."""
    result = get_service_slots(
        db=db,
        service_id=service_id,
        target_date=target_date,
        now=now,
        config=get_availability_config(),
        redis=redis,
    )
    return ServiceSlotsResponse(**result)
