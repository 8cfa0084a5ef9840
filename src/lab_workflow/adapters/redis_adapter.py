"""Redis adapter for publishing case status change notifications."""

import enum
import json
import logging
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal

import redis

from config import get_redis_host_and_port
from lab_workflow.domain.events import Event

logger = logging.getLogger(__name__)

r = redis.Redis(**get_redis_host_and_port())


def _serialize_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


def serialize_event(event: Event) -> str:
    """Serialize event to JSON tagged with its type name."""
    event_dict = {key: _serialize_value(value) for key, value in asdict(event).items()}
    event_dict["event_type"] = type(event).__name__
    return json.dumps(event_dict)


def publish(channel: str, event: Event, client: redis.Redis = None):
    """Publish event to Redis channel."""
    logger.info("publishing: channel=%s, event=%s", channel, event)
    (client or r).publish(channel, serialize_event(event))
