"""
Redis queue of pipeline triggers.

The external webhook listener pushes triggers here; the worker pops them
one at a time.
"""

import redis
from typing import Optional

from engine.src.config import get_settings
from engine.src.models.results import TriggerEvent

settings = get_settings()

TRIGGER_QUEUE = "snapci:triggers"

def get_redis_client() -> redis.Redis:
    return redis.from_url(settings.redis_url, decode_responses=True)

def enqueue_trigger(trigger: TriggerEvent):
    """Add a trigger to the processing queue."""
    client = get_redis_client()

    try:
        client.lpush(TRIGGER_QUEUE, trigger.model_dump_json())
    finally:
        client.close()

def dequeue_trigger(timeout: int = 5) -> Optional[TriggerEvent]:
    """
    Get next trigger from queue.
    Blocks for `timeout` seconds if queue is empty.
    """
    client = get_redis_client()

    try:
        result = client.brpop(TRIGGER_QUEUE, timeout=timeout)
        if result:
            _, trigger_data = result
            return TriggerEvent.model_validate_json(trigger_data)
        return None
    finally:
        client.close()

def get_queue_length() -> int:
    """Get number of triggers waiting."""
    client = get_redis_client()

    try:
        return client.llen(TRIGGER_QUEUE)
    finally:
        client.close()
