import json
from datetime import date, time
from unittest.mock import MagicMock

import pytest
from pika.exceptions import AMQPConnectionError

from booking_engine import events
from booking_engine.config import get_settings
from booking_engine.models import PaymentStatus, Reservation, ReservationStatus


@pytest.fixture()
def reservation() -> Reservation:
    return Reservation(
        id=7,
        booking_code="AMN-123456-AB12",
        resource_id=3,
        reservation_date=date(2025, 3, 1),
        start_time=time(9, 0),
        end_time=time(12, 0),
        status=ReservationStatus.APPROVED,
        payment_status=PaymentStatus.PAID,
    )


@pytest.fixture()
def broker(monkeypatch):
    monkeypatch.setattr(get_settings(), "event_broker_host", "rabbitmq")
    connection_cls = MagicMock()
    monkeypatch.setattr(events.pika, "BlockingConnection", connection_cls)
    return connection_cls


def test_event_payload(reservation):
    assert events.build_event("reservation.approved", reservation) == {
        "event": "reservation.approved",
        "reservation_id": 7,
        "booking_code": "AMN-123456-AB12",
        "resource_id": 3,
        "reservation_date": "2025-03-01",
        "start_time": "09:00:00",
        "end_time": "12:00:00",
        "status": "APPROVED",
        "payment_status": "PAID",
    }


def test_publish_disabled_without_broker(reservation, monkeypatch):
    monkeypatch.setattr(get_settings(), "event_broker_host", None)

    assert events.publish_reservation_event("reservation.created", reservation) is False


def test_publish_sends_persistent_message(reservation, broker):
    assert events.publish_reservation_event("reservation.created", reservation) is True

    channel = broker.return_value.channel.return_value
    channel.queue_declare.assert_called_once_with(queue="reservations", durable=True)
    kwargs = channel.basic_publish.call_args.kwargs
    assert kwargs["routing_key"] == "reservations"
    assert json.loads(kwargs["body"])["event"] == "reservation.created"
    assert kwargs["properties"].delivery_mode == 2
    broker.return_value.close.assert_called_once()


def test_broker_outage_is_logged_not_raised(reservation, broker, caplog):
    broker.side_effect = AMQPConnectionError("refused")

    assert events.publish_reservation_event("reservation.cancelled", reservation) is False
    assert "Failed to publish reservation.cancelled" in caplog.text
