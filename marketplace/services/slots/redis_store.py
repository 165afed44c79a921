# marketplace/services/slots/redis_store.py
"""
Redis storage for a provider's weekly rule windows.

Key format: availability:rules:{provider_id}
Value: Hash where field = day_of_week ("0".."6"),
       value = JSON list of ["HH:MM", "HH:MM"] windows for that weekday.

An empty list is a valid cached value ("no active rules that day");
a missing field is a cache miss.

Only rules are cached. Bookings, exceptions and settings are always read
live, so a cached window can never hide a newer booking.
"""

import json
from redis import Redis

from .config import AvailabilityConfig, get_availability_config


class RulesRedisStore:
    """Redis storage wrapper for cached weekday rule windows."""

    KEY_PREFIX = "availability:rules"

    def __init__(self, redis: Redis, config: AvailabilityConfig | None = None):
        self.redis = redis
        self.config = config or get_availability_config()

    def _key(self, provider_id: int) -> str:
        return f"{self.KEY_PREFIX}:{provider_id}"

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_windows(
        self,
        provider_id: int,
        day_of_week: int,
    ) -> list[tuple[str, str]] | None:
        """
        Get cached windows for a weekday.

        Returns:
            List of (start_time, end_time) or None on cache miss.
        """
        raw = self.redis.hget(self._key(provider_id), str(day_of_week))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return [(start, end) for start, end in json.loads(raw)]

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_windows(
        self,
        provider_id: int,
        day_of_week: int,
        windows: list[tuple[str, str]],
    ) -> None:
        """Store windows for a weekday and refresh the key TTL."""
        key = self._key(provider_id)
        pipe = self.redis.pipeline()
        pipe.hset(key, str(day_of_week), json.dumps([list(w) for w in windows]))
        pipe.expire(key, self.config.rules_cache_ttl_seconds)
        pipe.execute()

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_provider_rules(self, provider_id: int) -> int:
        """
        Drop all cached weekdays for a provider.

        Returns:
            Number of deleted keys (0 or 1).
        """
        return self.redis.delete(self._key(provider_id))
