import json
import threading
import time
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketplace.errors import (
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    SlotUnavailableError,
)
from marketplace.models.tables import Base, BookingAuditLog, Bookings
from marketplace.services import booking_commit
from marketplace.services.booking_commit import cancel_booking, commit_booking, get_booking_for_user
from marketplace.services.events import P2P_QUEUE
from marketplace.services.slots.config import AvailabilityConfig
from marketplace.services.slots.loader import ConstraintSnapshot, RuleWindow

from conftest import MONDAY, NOW, Factory, at

CONFIG = AvailabilityConfig()


@pytest.fixture
def setup(factory):
    provider = factory.provider()
    client = factory.user()
    service = factory.service(provider, duration_minutes=60)
    factory.rule(provider, "09:00", "17:00", day_of_week=MONDAY.weekday())
    return provider, client, service


def book(db, client, service, start, **kwargs):
    return commit_booking(
        db=db,
        client_id=client.id,
        service_id=service.id,
        start_datetime=start,
        now=kwargs.pop("now", NOW),
        config=CONFIG,
        **kwargs,
    )


def test_commit_creates_pending_booking(db, setup, fake_redis):
    provider, client, service = setup

    booking = book(db, client, service, at(10), notes="Knotless please", redis=fake_redis)

    assert booking.status == "pending"
    assert booking.provider_id == provider.id
    assert booking.notes == "Knotless please"
    assert booking.end_datetime - booking.start_datetime == timedelta(minutes=60)

    [audit] = db.query(BookingAuditLog).filter(BookingAuditLog.booking_id == booking.id).all()
    assert audit.action == "created"
    assert audit.new_status == "pending"

    [raw] = fake_redis.lists[P2P_QUEUE]
    event = json.loads(raw)
    assert event["type"] == "booking_created"
    assert event["booking_id"] == booking.id
    assert event["provider_id"] == provider.id

    db.refresh(provider)
    assert provider.booking_version == 1


def test_same_start_twice_rejected(db, setup):
    _, client, service = setup
    book(db, client, service, at(10))

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(10))

    assert db.query(Bookings).count() == 1


def test_overlapping_start_rejected(db, setup):
    _, client, service = setup
    book(db, client, service, at(10))

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(10, 30))

    assert book(db, client, service, at(11)).start_datetime.hour == 11


def test_off_grid_start_rejected(db, setup):
    _, client, service = setup

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(10, 5))


def test_outside_rule_window_rejected(db, setup):
    _, client, service = setup

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(16, 30))


def test_blocked_exception_rejected(db, factory, setup):
    provider, client, service = setup
    factory.exception(provider, at(12), at(13))

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(12))


def test_lead_time_rejected(db, factory, setup):
    provider, client, service = setup
    factory.settings(provider, min_lead_time_hours=5)

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(10))

    assert book(db, client, service, at(11)).status == "pending"


def test_day_cap_rejected(db, factory, setup):
    provider, client, service = setup
    factory.settings(provider, max_bookings_per_day=1)
    book(db, client, service, at(9))

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(14))


def test_concurrent_insert_hits_unique_index(db, factory, setup, monkeypatch):
    provider, client, service = setup
    factory.booking(provider, factory.user(), service, at(10), status="pending")

    # Snapshot that missed the competing booking
    def stale_snapshot(db, provider_id, target_date, config=None, redis=None):
        return ConstraintSnapshot(
            provider_id=provider_id,
            target_date=target_date,
            tz=config.tzinfo,
            rules=(RuleWindow("09:00", "17:00"),),
        )

    monkeypatch.setattr(booking_commit, "load_constraints", stale_snapshot)

    with pytest.raises(SlotUnavailableError):
        book(db, client, service, at(10))

    assert db.query(Bookings).count() == 1


def test_inactive_service_not_found(db, factory, setup):
    provider, client, _ = setup
    hidden = factory.service(provider, is_active=False)

    with pytest.raises(NotFoundError):
        book(db, client, hidden, at(10))


def test_inactive_provider_not_found(db, factory):
    provider = factory.provider(is_active=False)
    service = factory.service(provider)

    with pytest.raises(NotFoundError):
        book(db, factory.user(), service, at(10))


def test_inactive_client_denied(db, factory, setup):
    _, _, service = setup

    with pytest.raises(PermissionDeniedError):
        book(db, factory.user(is_active=False), service, at(10))


def test_provider_cannot_book_own_service(db, setup):
    provider, _, service = setup

    with pytest.raises(InvalidRequestError):
        book(db, provider, service, at(10))


# ── Cancellation ─────────────────────────────────────────────────────────


def test_cancel_frees_slot(db, setup, fake_redis):
    _, client, service = setup
    booking = book(db, client, service, at(10))

    cancelled = cancel_booking(db, booking.id, client.id, reason="Ill", redis=fake_redis)

    assert cancelled.status == "cancelled"
    assert cancelled.cancel_reason == "Ill"
    event = json.loads(fake_redis.lists[P2P_QUEUE][-1])
    assert event["type"] == "booking_cancelled"
    assert event["cancelled_by"] == "client"

    rebooked = book(db, client, service, at(10))
    assert rebooked.id != booking.id


def test_provider_can_cancel(db, setup):
    provider, client, service = setup
    booking = book(db, client, service, at(10))

    assert cancel_booking(db, booking.id, provider.id).status == "cancelled"


def test_cancel_twice_rejected(db, setup):
    _, client, service = setup
    booking = book(db, client, service, at(10))
    cancel_booking(db, booking.id, client.id)

    with pytest.raises(InvalidRequestError, match="already cancelled"):
        cancel_booking(db, booking.id, client.id)


def test_completed_booking_not_cancellable(db, factory, setup):
    provider, client, service = setup
    booking = factory.booking(provider, client, service, at(10), status="completed")

    with pytest.raises(InvalidRequestError):
        cancel_booking(db, booking.id, client.id)


def test_stranger_cannot_see_or_cancel(db, factory, setup):
    _, client, service = setup
    booking = book(db, client, service, at(10))
    stranger = factory.user()

    with pytest.raises(PermissionDeniedError):
        get_booking_for_user(db, booking.id, stranger.id)
    with pytest.raises(PermissionDeniedError):
        cancel_booking(db, booking.id, stranger.id)


def test_unknown_booking(db):
    with pytest.raises(NotFoundError):
        get_booking_for_user(db, 999, 1)


def test_overlapping_commits_are_serialized(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    seed = SessionLocal(expire_on_commit=False)
    factory = Factory(seed)
    provider = factory.provider()
    first, second = factory.user(), factory.user()
    service = factory.service(provider, duration_minutes=60)
    factory.rule(provider, "09:00", "17:00")
    seed.close()

    outcome = {}
    competitor_started = threading.Event()

    def competing_commit():
        db = SessionLocal()
        try:
            book(db, second, service, at(10, 30))
            outcome["second"] = "booked"
        except SlotUnavailableError:
            outcome["second"] = "rejected"
        finally:
            db.close()

    competitor = threading.Thread(target=competing_commit)
    real_generate = booking_commit.generate_slots

    # The competing commit starts once the first one has read its snapshot
    def generate_then_compete(*args, **kwargs):
        if not competitor_started.is_set():
            competitor_started.set()
            competitor.start()
            time.sleep(0.3)
        return real_generate(*args, **kwargs)

    monkeypatch.setattr(booking_commit, "generate_slots", generate_then_compete)

    db = SessionLocal()
    try:
        booking = book(db, first, service, at(10))
    finally:
        db.close()
    competitor.join(timeout=10)

    assert booking.status == "pending"
    assert outcome == {"second": "rejected"}

    check = SessionLocal()
    try:
        active = check.query(Bookings).filter(Bookings.status.in_(("pending", "confirmed"))).count()
    finally:
        check.close()
    engine.dispose()
    assert active == 1
