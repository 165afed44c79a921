# marketplace/services/slots/__init__.py
"""
Slot availability module.

Loader: rules (cached in Redis), exceptions, bookings, settings
Generator: pure slot computation over a loader snapshot
Queries: schedule view and service view
"""

from .config import AvailabilityConfig, get_availability_config
from .intervals import TimeRange, overlaps
from .loader import ConstraintSnapshot, load_constraints
from .generator import SlotGenerationResult, generate_slots
from .redis_store import RulesRedisStore
from .invalidator import invalidate_provider_rules
from .queries import get_provider_schedule, get_service_slots

__all__ = [
    "AvailabilityConfig",
    "get_availability_config",
    "TimeRange",
    "overlaps",
    "ConstraintSnapshot",
    "load_constraints",
    "SlotGenerationResult",
    "generate_slots",
    "RulesRedisStore",
    "invalidate_provider_rules",
    "get_provider_schedule",
    "get_service_slots",
]
