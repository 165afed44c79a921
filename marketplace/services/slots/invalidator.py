# marketplace/services/slots/invalidator.py
"""
Cache invalidation for provider rule windows.

Triggers:
✓ Provider weekly rules replaced → drop every cached weekday

Does NOT trigger:
✗ Booking created/cancelled (bookings are never cached)
✗ Exception created/deleted (exceptions are never cached)
✗ Settings changed (settings are never cached)
"""

import logging
from redis import Redis

from .redis_store import RulesRedisStore

logger = logging.getLogger(__name__)


def invalidate_provider_rules(
    redis: Redis | None,
    provider_id: int,
) -> int:
    """
    Invalidate cached rule windows for a provider.

    Args:
        redis: Redis client, or None when caching is disabled
        provider_id: Provider user ID

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    deleted = RulesRedisStore(redis).delete_provider_rules(provider_id)
    logger.info("Invalidated rule cache for provider %s (%s keys)", provider_id, deleted)
    return deleted
