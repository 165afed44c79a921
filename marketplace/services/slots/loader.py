# marketplace/services/slots/loader.py
"""
Constraint loader: the four raw inputs of slot generation.

For (provider, local date) fetches:
✓ active weekly rules for the weekday (Redis-cached when available)
✓ exceptions overlapping the day (any type)
✓ pending/confirmed bookings overlapping the day
✓ provider availability settings (defaults when missing)

No business logic here. The fetches are not wrapped in one serializable
transaction: the snapshot is advisory and the booking commit path
re-checks authoritatively.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from redis import Redis
from sqlalchemy.orm import Session

from ...models.tables import (
    ACTIVE_BOOKING_STATUSES,
    AvailabilityExceptions as DBAvailabilityException,
    AvailabilityRules as DBAvailabilityRule,
    Bookings as DBBooking,
    ProviderAvailabilitySettings as DBAvailabilitySettings,
)
from .config import AvailabilityConfig, get_availability_config, time_str_to_minutes
from .intervals import TimeRange, as_utc, to_db
from .redis_store import RulesRedisStore

logger = logging.getLogger(__name__)

BLOCKED = "blocked"


@dataclass(frozen=True)
class RuleWindow:
    """Recurring wall-clock window, e.g. ("09:00", "12:00")."""
    start_time: str
    end_time: str

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end_time)


@dataclass(frozen=True)
class ExceptionEntry:
    id: int
    range: TimeRange
    type: str

    @property
    def is_blocking(self) -> bool:
        return self.type == BLOCKED


@dataclass(frozen=True)
class BookingEntry:
    id: int
    range: TimeRange
    status: str


@dataclass(frozen=True)
class AvailabilitySettings:
    min_lead_time_hours: int = 0
    max_bookings_per_day: int | None = None


@dataclass(frozen=True)
class ConstraintSnapshot:
    """Point-in-time inputs for one provider and one local calendar date."""
    provider_id: int
    target_date: date
    tz: tzinfo
    rules: tuple[RuleWindow, ...] = ()
    exceptions: tuple[ExceptionEntry, ...] = ()
    bookings: tuple[BookingEntry, ...] = ()
    settings: AvailabilitySettings = AvailabilitySettings()


def day_bounds(target_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    00:00:00 and 23:59:59.999999 of the local date, as aware UTC datetimes.
    """
    start_of_day = datetime.combine(target_date, time.min, tzinfo=tz)
    end_of_day = datetime.combine(target_date, time.max, tzinfo=tz)
    return as_utc(start_of_day), as_utc(end_of_day)


def load_constraints(
    db: Session,
    provider_id: int,
    target_date: date,
    config: AvailabilityConfig | None = None,
    redis: Redis | None = None,
) -> ConstraintSnapshot:
    """
    Assemble the constraint snapshot for a provider on a local date.

    Args:
        redis: Optional client for the rule-window cache. Pass None to
               read rules straight from the database.
    """
    config = config or get_availability_config()
    tz = config.tzinfo

    # Local calendar weekday, never a UTC-shifted one
    day_of_week = target_date.weekday()
    start_of_day, end_of_day = day_bounds(target_date, tz)

    rules = _get_rule_windows(db, provider_id, day_of_week, config, redis)
    exceptions = _get_exceptions(db, provider_id, start_of_day, end_of_day)
    bookings = _get_active_bookings(db, provider_id, start_of_day, end_of_day)
    settings = get_provider_settings(db, provider_id)

    return ConstraintSnapshot(
        provider_id=provider_id,
        target_date=target_date,
        tz=tz,
        rules=tuple(rules),
        exceptions=tuple(exceptions),
        bookings=tuple(bookings),
        settings=settings,
    )


def get_provider_settings(db: Session, provider_id: int) -> AvailabilitySettings:
    """Provider settings, or the defaults when the provider never saved any."""
    row = (
        db.query(DBAvailabilitySettings)
        .filter(DBAvailabilitySettings.provider_id == provider_id)
        .first()
    )
    if row is None:
        return AvailabilitySettings()

    return AvailabilitySettings(
        min_lead_time_hours=row.min_lead_time_hours or 0,
        max_bookings_per_day=row.max_bookings_per_day,
    )


# ── Rules (with cache) ───────────────────────────────────────────────────


def _get_rule_windows(
    db: Session,
    provider_id: int,
    day_of_week: int,
    config: AvailabilityConfig,
    redis: Redis | None,
) -> list[RuleWindow]:
    """Get weekday windows, using Redis cache when available."""
    if redis is not None:
        store = RulesRedisStore(redis, config)
        cached = store.get_day_windows(provider_id, day_of_week)
        if cached is not None:
            logger.debug("Rule cache hit: provider=%s day=%s", provider_id, day_of_week)
            return [RuleWindow(start, end) for start, end in cached]

        logger.debug("Rule cache miss: provider=%s day=%s", provider_id, day_of_week)
        windows = _query_rule_windows(db, provider_id, day_of_week)
        store.store_day_windows(
            provider_id, day_of_week, [(w.start_time, w.end_time) for w in windows]
        )
        return windows

    return _query_rule_windows(db, provider_id, day_of_week)


def _query_rule_windows(db: Session, provider_id: int, day_of_week: int) -> list[RuleWindow]:
    rows = (
        db.query(DBAvailabilityRule)
        .filter(
            DBAvailabilityRule.provider_id == provider_id,
            DBAvailabilityRule.day_of_week == day_of_week,
            DBAvailabilityRule.is_active.is_(True),
        )
        .order_by(DBAvailabilityRule.start_time)
        .all()
    )
    return [RuleWindow(r.start_time, r.end_time) for r in rows]


# ── Exceptions and bookings ──────────────────────────────────────────────


def _get_exceptions(
    db: Session,
    provider_id: int,
    start_of_day: datetime,
    end_of_day: datetime,
) -> list[ExceptionEntry]:
    rows = (
        db.query(DBAvailabilityException)
        .filter(
            DBAvailabilityException.provider_id == provider_id,
            DBAvailabilityException.start_datetime < to_db(end_of_day),
            DBAvailabilityException.end_datetime > to_db(start_of_day),
        )
        .order_by(DBAvailabilityException.start_datetime)
        .all()
    )
    return [
        ExceptionEntry(
            id=e.id,
            range=TimeRange(as_utc(e.start_datetime), as_utc(e.end_datetime)),
            type=e.type,
        )
        for e in rows
    ]


def _get_active_bookings(
    db: Session,
    provider_id: int,
    start_of_day: datetime,
    end_of_day: datetime,
) -> list[BookingEntry]:
    rows = (
        db.query(DBBooking)
        .filter(
            DBBooking.provider_id == provider_id,
            DBBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            DBBooking.start_datetime < to_db(end_of_day),
            DBBooking.end_datetime > to_db(start_of_day),
        )
        .order_by(DBBooking.start_datetime)
        .all()
    )
    return [
        BookingEntry(
            id=b.id,
            range=TimeRange(as_utc(b.start_datetime), as_utc(b.end_datetime)),
            status=b.status,
        )
        for b in rows
    ]
