"""Publish reservation state changes to RabbitMQ for downstream consumers."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings
from .models import Reservation

logger = logging.getLogger(__name__)


def build_event(event: str, reservation: Reservation) -> Dict[str, Any]:
    return {
        "event": event,
        "reservation_id": reservation.id,
        "booking_code": reservation.booking_code,
        "resource_id": reservation.resource_id,
        "reservation_date": reservation.reservation_date.isoformat(),
        "start_time": reservation.start_time.isoformat(),
        "end_time": reservation.end_time.isoformat(),
        "status": reservation.status.value,
        "payment_status": reservation.payment_status.value,
    }


def publish_reservation_event(event: str, reservation: Reservation) -> bool:
    """Send one persistent message; returns False when nothing was delivered.

    Called after the state change has committed, so a broker outage is
    logged and does not undo the transition.
    """
    settings = get_settings()
    if not settings.event_broker_host:
        return False

    message = build_event(event, reservation)
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.event_broker_host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=settings.event_queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=settings.event_queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
    except AMQPError as exc:
        logger.error("Failed to publish %s for %s: %s", event, reservation.booking_code, exc)
        return False
    logger.debug("Published %s for %s", event, reservation.booking_code)
    return True
