"""Unit tests for hold expiry."""
from datetime import time

import pytest

from booking_engine import holds, reservations
from booking_engine.errors import InvalidTransition
from booking_engine.models import PaymentStatus, Reservation, ReservationStatus


def _awaiting_payment(db_session, make_resource, reservation_payload, **kwargs):
    resource_id = make_resource()
    created = reservations.create_reservation(db_session, reservation_payload(resource_id, **kwargs))
    return resource_id, reservations.review_reservation(db_session, created.id, "clerk")


def test_not_expired_before_due_time(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24)

    assert not holds.is_hold_expired(reservation)


def test_expired_one_second_after_due_time(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24, seconds=1)

    assert holds.is_hold_expired(reservation)


def test_lazy_expiry_on_read(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24, seconds=1)

    fetched = reservations.get_reservation(db_session, reservation.id)

    assert fetched.status == ReservationStatus.CANCELLED
    assert fetched.cancelled_by == holds.EXPIRY_ACTOR
    assert fetched.cancellation_reason == "payment window expired"
    assert fetched.cancelled_at == frozen_clock.now
    db_session.rollback()


def test_paid_hold_never_expires(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    reservations.record_payment(db_session, reservation.id, PaymentStatus.EXEMPTED)
    frozen_clock.advance(days=3)

    assert reservations.get_reservation(db_session, reservation.id).status == ReservationStatus.AWAITING_PAYMENT
    assert holds.sweep_expired_holds(db_session) == 0
    db_session.rollback()


def test_payment_after_expiry_is_refused(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=25)

    with pytest.raises(InvalidTransition):
        reservations.record_payment(db_session, reservation.id, PaymentStatus.PAID)
    assert db_session.get(Reservation, reservation.id).status == ReservationStatus.CANCELLED
    db_session.rollback()


def test_sweep_is_idempotent(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24, seconds=1)

    assert holds.run_sweep(db_session) == 1
    first_cancelled_at = db_session.get(Reservation, reservation.id).cancelled_at
    frozen_clock.advance(hours=1)
    assert holds.run_sweep(db_session) == 0

    db_session.expire_all()
    stored = db_session.get(Reservation, reservation.id)
    assert stored.status == ReservationStatus.CANCELLED
    assert stored.cancelled_at == first_cancelled_at
    db_session.rollback()


def test_lazy_expiry_then_sweep_is_a_noop(db_session, make_resource, reservation_payload, frozen_clock):
    _, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24, seconds=1)
    reservations.get_reservation(db_session, reservation.id)

    assert holds.run_sweep(db_session) == 0


def test_sweep_scoped_to_resource(db_session, make_resource, reservation_payload, frozen_clock):
    other_id = make_resource(name="Cottage 9")
    resource_id, _ = _awaiting_payment(db_session, make_resource, reservation_payload)
    other = reservations.create_reservation(db_session, reservation_payload(other_id))
    reservations.review_reservation(db_session, other.id, "clerk")
    frozen_clock.advance(hours=25)

    assert holds.sweep_expired_holds(db_session, resource_id=resource_id) == 1
    db_session.commit()
    assert holds.sweep_expired_holds(db_session, resource_id=other_id) == 1
    db_session.commit()


def test_expired_hold_releases_slot_for_new_request(db_session, make_resource, reservation_payload, frozen_clock):
    resource_id, reservation = _awaiting_payment(db_session, make_resource, reservation_payload)
    frozen_clock.advance(hours=24, seconds=1)

    replacement = reservations.create_reservation(
        db_session, reservation_payload(resource_id, start=time(10), end=time(11))
    )

    assert replacement.status == ReservationStatus.PENDING_REVIEW
    db_session.expire_all()
    assert db_session.get(Reservation, reservation.id).status == ReservationStatus.CANCELLED
    db_session.rollback()
