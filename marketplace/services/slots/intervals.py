# marketplace/services/slots/intervals.py
"""
Half-open time ranges.

A range [start, end) contains start and excludes end, so two ranges that
merely touch (one ends exactly when the other starts) do not overlap.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"TimeRange end must be after start: {self.start} >= {self.end}")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "TimeRange":
        return cls(start, start + timedelta(minutes=minutes))


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    return a.start < b.end and a.end > b.start


def overlaps_any(candidate: TimeRange, ranges: Iterable[TimeRange]) -> bool:
    return any(overlaps(candidate, r) for r in ranges)


# ── UTC helpers ─────────────────────────────────────────────────────────
# The database stores naive UTC; everything in memory is timezone-aware.


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db(dt: datetime) -> datetime:
    """Naive UTC datetime for storage and query parameters."""
    return as_utc(dt).replace(tzinfo=None)
