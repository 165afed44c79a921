# marketplace/services/slots/config.py
"""
Availability configuration for slot generation.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo

from ...config import settings


TIME_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class AvailabilityConfig:
    """
    Configuration for the slot generator.

    Attributes:
        slot_step_minutes: Cursor step between candidate starts (15/30/60).
            Independent of service duration.
        schedule_slot_minutes: Display duration for the provider schedule view
        timezone: IANA name of the provider calendar zone
        rules_cache_ttl_seconds: Redis TTL for cached weekday rule windows
    """
    slot_step_minutes: int = 15
    schedule_slot_minutes: int = 60
    timezone: str = "UTC"
    rules_cache_ttl_seconds: int = 86400

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes not in (15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 15, 30, or 60, got {self.slot_step_minutes}")
        if self.schedule_slot_minutes <= 0:
            raise ValueError("schedule_slot_minutes must be positive")
        # Fail fast on unknown zone names
        ZoneInfo(self.timezone)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_availability_config() -> AvailabilityConfig:
    """Availability configuration built from application settings (singleton)."""
    return AvailabilityConfig(
        slot_step_minutes=settings.slot_step_minutes,
        schedule_slot_minutes=settings.schedule_slot_minutes,
        timezone=settings.calendar_timezone,
        rules_cache_ttl_seconds=settings.rules_cache_ttl_seconds,
    )


def time_str_to_minutes(value: str) -> int:
    """
    Convert "HH:MM" (or "HH:MM:SS") to minutes since midnight.

    "24:00" is accepted as end-of-day. Seconds are ignored.
    """
    match = TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time {value!r}, out of range")

    return hours * 60 + minutes


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
