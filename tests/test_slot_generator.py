import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from marketplace.services.slots.config import AvailabilityConfig
from marketplace.services.slots.generator import generate_slots
from marketplace.services.slots.intervals import TimeRange
from marketplace.services.slots.loader import (
    AvailabilitySettings,
    BookingEntry,
    ConstraintSnapshot,
    ExceptionEntry,
    RuleWindow,
)

from conftest import MONDAY, NOW, at

CONFIG = AvailabilityConfig()


def make_snapshot(
    rules=(("09:00", "17:00"),),
    exceptions=(),
    bookings=(),
    min_lead_time_hours=0,
    max_bookings_per_day=None,
    target_date=MONDAY,
    tz=timezone.utc,
):
    return ConstraintSnapshot(
        provider_id=1,
        target_date=target_date,
        tz=tz,
        rules=tuple(RuleWindow(start, end) for start, end in rules),
        exceptions=tuple(
            ExceptionEntry(id=i, range=TimeRange(start, end), type=kind)
            for i, (start, end, kind) in enumerate(exceptions, start=1)
        ),
        bookings=tuple(
            BookingEntry(id=i, range=TimeRange(start, end), status=status)
            for i, (start, end, status) in enumerate(bookings, start=1)
        ),
        settings=AvailabilitySettings(
            min_lead_time_hours=min_lead_time_hours,
            max_bookings_per_day=max_bookings_per_day,
        ),
    )


def slots_for(snapshot, duration=60, now=NOW, config=CONFIG):
    return generate_slots(snapshot, duration, now, config).slots


# ── Basic grid ───────────────────────────────────────────────────────────


def test_full_day_window_grid():
    slots = slots_for(make_snapshot())

    assert slots[0] == at(9)
    assert slots[-1] == at(16)
    assert len(slots) == 29
    assert all(b - a == timedelta(minutes=15) for a, b in zip(slots, slots[1:]))


def test_slots_are_aware_utc():
    slots = slots_for(make_snapshot())

    assert all(s.tzinfo is not None and s.utcoffset() == timedelta(0) for s in slots)


def test_step_is_independent_of_duration():
    slots = slots_for(make_snapshot(), duration=90)

    assert slots[:3] == [at(9), at(9, 15), at(9, 30)]
    assert slots[-1] == at(15, 30)


def test_configured_step():
    slots = slots_for(make_snapshot(), config=AvailabilityConfig(slot_step_minutes=60))

    assert slots == [at(h) for h in range(9, 17)]


def test_no_rules_no_slots():
    result = generate_slots(make_snapshot(rules=()), 60, NOW, CONFIG)

    assert result.slots == []


def test_window_end_is_exclusive():
    assert slots_for(make_snapshot(rules=[("16:00", "17:00")])) == [at(16)]


def test_duration_longer_than_window():
    assert slots_for(make_snapshot(rules=[("16:00", "17:00")]), duration=90) == []


def test_slots_never_span_gap_between_windows():
    snapshot = make_snapshot(rules=[("14:00", "17:00"), ("09:00", "12:00")])
    slots = slots_for(snapshot)

    assert slots[0] == at(9)
    assert at(11) in slots
    assert at(11, 15) not in slots
    assert at(14) in slots
    assert slots == sorted(slots)
    for s in slots:
        end = s + timedelta(minutes=60)
        assert end <= at(12) or s >= at(14)


def test_end_of_day_window():
    slots = slots_for(make_snapshot(rules=[("22:00", "24:00")]))

    assert slots[-1] == at(23)


def test_overlapping_rules_are_not_merged(caplog):
    snapshot = make_snapshot(rules=[("09:00", "11:00"), ("10:00", "12:00")])

    with caplog.at_level(logging.WARNING):
        slots = slots_for(snapshot)

    assert slots.count(at(10)) == 2
    assert "Overlapping rule windows" in caplog.text


def test_inverted_rule_window_is_skipped():
    snapshot = make_snapshot(rules=[("12:00", "10:00"), ("13:00", "14:00")])

    assert slots_for(snapshot) == [at(13)]


def test_invalid_duration():
    with pytest.raises(ValueError):
        generate_slots(make_snapshot(), 0, NOW, CONFIG)


def test_deterministic():
    snapshot = make_snapshot(
        exceptions=[(at(10), at(11), "blocked")],
        bookings=[(at(13), at(14), "pending")],
    )

    first = generate_slots(snapshot, 60, NOW, CONFIG)
    second = generate_slots(snapshot, 60, NOW, CONFIG)

    assert first == second


# ── Exceptions and bookings ──────────────────────────────────────────────


def test_blocked_exception_removes_overlapping_candidates():
    slots = slots_for(make_snapshot(exceptions=[(at(10), at(12), "blocked")]))

    assert at(9) in slots
    assert at(12) in slots
    for s in slots:
        assert not (s < at(12) and s + timedelta(minutes=60) > at(10))
    assert at(9, 15) not in slots
    assert at(11, 45) not in slots


def test_non_blocking_exception_is_reported_but_ignored():
    snapshot = make_snapshot(exceptions=[(at(10), at(12), "extended")])
    result = generate_slots(snapshot, 60, NOW, CONFIG)

    assert at(10) in result.slots
    assert [e.type for e in result.exceptions] == ["extended"]


def test_booking_removes_overlapping_candidates():
    result = generate_slots(
        make_snapshot(bookings=[(at(14), at(15), "confirmed")]), 60, NOW, CONFIG
    )

    assert at(13) in result.slots
    assert at(15) in result.slots
    assert at(13, 15) not in result.slots
    assert at(14, 45) not in result.slots
    assert [b.range.start for b in result.bookings] == [at(14)]


def test_booking_from_previous_day_blocks_morning():
    overnight = (at(23, day=MONDAY - timedelta(days=1)), at(9, 30), "confirmed")
    slots = slots_for(make_snapshot(bookings=[overnight]))

    assert at(9) not in slots
    assert slots[0] == at(9, 30)


def test_accepted_slots_never_overlap_busy_time():
    snapshot = make_snapshot(
        rules=[("08:00", "12:00"), ("13:00", "20:00")],
        exceptions=[(at(9, 10), at(9, 50), "blocked"), (at(15), at(16), "blocked")],
        bookings=[(at(13, 30), at(14), "pending"), (at(17, 45), at(18, 15), "confirmed")],
    )
    busy = [e.range for e in snapshot.exceptions] + [b.range for b in snapshot.bookings]

    for duration in (15, 45, 60, 120):
        for s in slots_for(snapshot, duration=duration):
            candidate = TimeRange.from_duration(s, duration)
            assert all(not (candidate.start < b.end and candidate.end > b.start) for b in busy)


# ── Settings ─────────────────────────────────────────────────────────────


def test_day_cap_reached_empties_day():
    bookings = [(at(9), at(10), "confirmed"), (at(11), at(12), "confirmed")]
    result = generate_slots(
        make_snapshot(bookings=bookings, max_bookings_per_day=2), 60, NOW, CONFIG
    )

    assert result.slots == []
    assert len(result.bookings) == 2


def test_day_cap_not_reached():
    bookings = [(at(9), at(10), "confirmed"), (at(11), at(12), "confirmed")]

    assert slots_for(make_snapshot(bookings=bookings, max_bookings_per_day=3))


def test_lead_time_longer_than_day():
    snapshot = make_snapshot(rules=[("00:00", "24:00")], min_lead_time_hours=48)

    assert slots_for(snapshot) == []


def test_lead_time_skips_early_starts():
    now = at(8)
    snapshot = make_snapshot(min_lead_time_hours=2)

    assert slots_for(snapshot, now=now)[0] == at(10)


def test_now_between_grid_points():
    assert slots_for(make_snapshot(), now=at(10, 5))[0] == at(10, 15)


def test_past_day_has_no_slots():
    later = datetime(2030, 1, 8, 12, 0, tzinfo=timezone.utc)

    assert slots_for(make_snapshot(), now=later) == []


# ── Timezones ────────────────────────────────────────────────────────────


def test_rule_times_are_local_wall_clock():
    london = ZoneInfo("Europe/London")
    summer_monday = date(2030, 7, 1)
    snapshot = make_snapshot(
        rules=[("09:00", "10:00")], target_date=summer_monday, tz=london
    )

    slots = slots_for(snapshot, config=AvailabilityConfig(timezone="Europe/London"))

    assert slots == [datetime(2030, 7, 1, 8, 0, tzinfo=timezone.utc)]
