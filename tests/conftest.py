import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = ""
os.environ["CALENDAR_TIMEZONE"] = "UTC"

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.database import get_db
from marketplace.dependencies import get_now, get_redis
from marketplace.main import app
from marketplace.models.tables import (
    AvailabilityExceptions,
    AvailabilityRules,
    Base,
    Bookings,
    ProviderAvailabilitySettings,
    Services,
    Users,
)
from marketplace.services.slots.intervals import to_db

# 2030-01-07 is a Monday (day_of_week 0); NOW is early that morning
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 7, 6, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    """Aware UTC datetime on the test day."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


class FakeRedis:
    """In-memory double for the handful of Redis commands the app uses."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.hashes.pop(key, None) is not None or self.lists.pop(key, None) is not None:
                deleted += 1
        return deleted

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db: Session):
        self.db = db
        self._seq = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role: str = "client", is_active: bool = True) -> Users:
        self._seq += 1
        return self._save(Users(
            email=f"{role}{self._seq}@example.com",
            first_name=role.title(),
            last_name=str(self._seq),
            role=role,
            is_active=is_active,
        ))

    def provider(self, **kwargs) -> Users:
        return self.user(role="provider", **kwargs)

    def service(
        self,
        provider: Users,
        duration_minutes: int = 60,
        is_active: bool = True,
        location_types: str = '["client_travels_to_provider"]',
    ) -> Services:
        return self._save(Services(
            provider_id=provider.id,
            title="Box braids",
            duration_minutes=duration_minutes,
            base_price_pence=5000,
            travel_fee_pence=500,
            materials_fee_pence=0,
            materials_policy="client_provides",
            location_types=location_types,
            is_active=is_active,
        ))

    def rule(
        self,
        provider: Users,
        start_time: str = "09:00",
        end_time: str = "17:00",
        day_of_week: int = 0,
        is_active: bool = True,
    ) -> AvailabilityRules:
        return self._save(AvailabilityRules(
            provider_id=provider.id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
        ))

    def exception(
        self,
        provider: Users,
        start: datetime,
        end: datetime,
        type: str = "blocked",
    ) -> AvailabilityExceptions:
        return self._save(AvailabilityExceptions(
            provider_id=provider.id,
            start_datetime=to_db(start),
            end_datetime=to_db(end),
            type=type,
        ))

    def booking(
        self,
        provider: Users,
        client: Users,
        service: Services,
        start: datetime,
        minutes: int = 60,
        status: str = "confirmed",
    ) -> Bookings:
        return self._save(Bookings(
            provider_id=provider.id,
            client_id=client.id,
            service_id=service.id,
            start_datetime=to_db(start),
            end_datetime=to_db(start + timedelta(minutes=minutes)),
            status=status,
        ))

    def settings(
        self,
        provider: Users,
        min_lead_time_hours: int = 0,
        max_bookings_per_day: int | None = None,
    ) -> ProviderAvailabilitySettings:
        return self._save(ProviderAvailabilitySettings(
            provider_id=provider.id,
            min_lead_time_hours=min_lead_time_hours,
            max_bookings_per_day=max_bookings_per_day,
        ))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: None
    app.dependency_overrides[get_now] = lambda: NOW
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
