import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import SessionLocal
from .errors import AvailabilityError
from .redis_client import redis_client
from .routers import availability, bookings, services

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Marketplace Availability API")

app.include_router(availability.router)
app.include_router(services.router)
app.include_router(bookings.router)


@app.exception_handler(AvailabilityError)
async def availability_error_handler(request: Request, exc: AvailabilityError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health():
    """Reachability of the database and Redis (None when Redis is not configured)."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unreachable: {e}")
        database_ok = False
    finally:
        db.close()

    redis_ok = None
    if redis_client is not None:
        try:
            redis_ok = bool(redis_client.ping())
        except RedisError as e:
            logger.error(f"Health check: Redis unreachable: {e}")
            redis_ok = False

    return {"database": database_ok, "redis": redis_ok}
