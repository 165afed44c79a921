"""
marketplace/services/events.py

Event emitter: pushes booking events to a Redis queue for the external
notification service.

Queue:
- events:p2p: instant delivery (booking notifications to specific users)

Delivery is best effort. A failed push is logged and never fails the
booking transaction that triggered it.
"""

import json
import time
import logging
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    No-op when Redis is not configured.
    """
    if redis is None:
        logger.debug(f"Event {event_type} dropped: Redis not configured")
        return

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
