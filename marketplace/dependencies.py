# marketplace/dependencies.py
"""
Shared FastAPI dependencies.

Identity comes from the gateway: it authenticates the request and forwards
the user id in X-User-Id. The backend is not reachable directly.
"""

from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, status
from redis import Redis
from sqlalchemy.orm import Session

from .database import get_db
from .models.tables import Users as DBUsers
from .redis_client import redis_client


def get_redis() -> Redis | None:
    return redis_client


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_current_user_id(
    x_user_id: str | None = Header(None),
    db: Session = Depends(get_db),
) -> int:
    if not x_user_id or not x_user_id.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = db.get(DBUsers, int(x_user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user.id


def get_current_provider_id(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> int:
    user = db.get(DBUsers, user_id)
    if user.role != "provider":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Provider account required")
    return user_id
