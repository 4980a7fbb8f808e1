"""Lesson lifecycle events on a durable RabbitMQ queue, sent after commit."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import pika
from pika.exceptions import AMQPError

from lesson_scheduling.core.config import settings

logger = logging.getLogger(__name__)

PERSISTENT = 2


def build_envelope(event_type: str, event_data: dict[str, Any]) -> str:
    return json.dumps(
        {
            "event_type": event_type,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "event_data": event_data,
        },
        default=str,
    )


def publish_lesson_event(event_type: str, event_data: dict[str, Any]) -> bool:
    """
    Send one event; returns whether the broker took it.

    The database change it describes is already committed, so a broker
    outage is logged and otherwise ignored.
    """
    if not settings.EVENTS_ENABLED:
        return False

    body = build_envelope(event_type, event_data)
    try:
        connection = pika.BlockingConnection(pika.URLParameters(settings.RABBITMQ_URL))
    except AMQPError as e:
        logger.warning("RabbitMQ unreachable, dropping %s event: %s", event_type, e)
        return False

    try:
        channel = connection.channel()
        channel.queue_declare(queue=settings.EVENTS_QUEUE, durable=True)
        channel.basic_publish(
            exchange="",
            routing_key=settings.EVENTS_QUEUE,
            body=body,
            properties=pika.BasicProperties(delivery_mode=PERSISTENT, content_type="application/json"),
        )
    except AMQPError as e:
        logger.warning("Publishing %s event failed: %s", event_type, e)
        return False
    finally:
        connection.close()
    logger.debug("Published %s event", event_type)
    return True
