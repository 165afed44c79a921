# marketplace/services/slots/generator.py
"""
Slot generation: bookable start times for one provider on one local date.

Pure computation over a ConstraintSnapshot. No database, no clock:
`now` is passed in, so identical inputs always give identical output.

Per rule window [rule_start, rule_end):
  cursor steps every slot_step_minutes from rule_start
  candidate = [cursor, cursor + duration)
  candidate end > rule_end        → stop this window (no partial fits)
  cursor < now + lead time        → skip, keep scanning
  overlaps blocked exception/booking → skip
  otherwise                       → accept cursor

A reached day cap empties the result before any window is scanned.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from .config import AvailabilityConfig, get_availability_config
from .intervals import TimeRange, as_utc, overlaps_any
from .loader import BookingEntry, ConstraintSnapshot, ExceptionEntry, RuleWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotGenerationResult:
    slots: list[datetime] = field(default_factory=list)
    bookings: list[BookingEntry] = field(default_factory=list)
    exceptions: list[ExceptionEntry] = field(default_factory=list)


def generate_slots(
    snapshot: ConstraintSnapshot,
    duration_minutes: int,
    now: datetime,
    config: AvailabilityConfig | None = None,
) -> SlotGenerationResult:
    """
    Generate accepted slot starts (aware UTC, ascending per window).

    Bookings and exceptions of the snapshot are returned unchanged for
    display, including non-blocking exception types.
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

    config = config or get_availability_config()
    bookings = list(snapshot.bookings)
    exceptions = list(snapshot.exceptions)

    # Step 1: day cap, evaluated once for the whole day
    cap = snapshot.settings.max_bookings_per_day
    if cap is not None and len(bookings) >= cap:
        return SlotGenerationResult(slots=[], bookings=bookings, exceptions=exceptions)

    # Step 2: lead time
    earliest_start = as_utc(now) + timedelta(hours=snapshot.settings.min_lead_time_hours)

    # Steps 3-4: occupied time from both sources
    busy: list[TimeRange] = [e.range for e in exceptions if e.is_blocking]
    busy.extend(b.range for b in bookings)

    # Step 5: scan each window independently
    step = timedelta(minutes=config.slot_step_minutes)
    duration = timedelta(minutes=duration_minutes)
    slots: list[datetime] = []

    for window in _ordered_windows(snapshot):
        window_range = rule_window_range(window, snapshot.target_date, snapshot.tz)
        if window_range is None:
            continue

        cursor = window_range.start
        while cursor < window_range.end:
            candidate_end = cursor + duration
            if candidate_end > window_range.end:
                break

            if cursor >= earliest_start and not overlaps_any(TimeRange(cursor, candidate_end), busy):
                slots.append(cursor)

            cursor += step

    return SlotGenerationResult(slots=slots, bookings=bookings, exceptions=exceptions)


def rule_window_range(
    window: RuleWindow,
    target_date: date,
    tz: tzinfo,
) -> TimeRange | None:
    """
    Absolute UTC range of a wall-clock window on a local date.

    Returns None for an empty or inverted window.
    """
    start_min = window.start_minutes
    end_min = window.end_minutes
    if end_min <= start_min:
        logger.warning(f"Skipping inverted rule window {window.start_time}-{window.end_time}")
        return None

    midnight = datetime.combine(target_date, time.min, tzinfo=tz)
    start = as_utc(midnight + timedelta(minutes=start_min))
    end = as_utc(midnight + timedelta(minutes=end_min))
    if end <= start:
        return None
    return TimeRange(start, end)


def _ordered_windows(snapshot: ConstraintSnapshot) -> list[RuleWindow]:
    """
    Windows sorted by start time. Overlaps are logged, not merged:
    overlapping rules are a provider configuration error.
    """
    windows = sorted(snapshot.rules, key=lambda w: (w.start_minutes, w.end_minutes))

    for prev, nxt in zip(windows, windows[1:]):
        if nxt.start_minutes < prev.end_minutes:
            logger.warning(
                "Overlapping rule windows for provider %s on %s: %s-%s and %s-%s",
                snapshot.provider_id,
                snapshot.target_date.isoformat(),
                prev.start_time,
                prev.end_time,
                nxt.start_time,
                nxt.end_time,
            )

    return windows
