"""Reservation lifecycle: creation, review, payment, approval and cancellation."""
from __future__ import annotations

import logging
import secrets
import string
import time as time_module
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from . import clock, conflicts, holds
from .catalog import lock_resource
from .config import get_settings
from .database import is_sqlite, rollback_on_error
from .errors import (
    CapacityExceeded,
    InvalidTimeRange,
    InvalidTransition,
    PaymentNotConfirmed,
    ReservationNotFound,
    ResourceInactive,
    SlotUnavailable,
)
from .events import publish_reservation_event
from .models import (
    SETTLED_PAYMENT_STATUSES,
    TERMINAL_STATUSES,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from .pricing import compute_total
from .schemas import ReservationCreate
from .tokens import issue_token

logger = logging.getLogger(__name__)

TRANSITIONS = {
    ReservationStatus.PENDING_REVIEW: frozenset({ReservationStatus.AWAITING_PAYMENT, ReservationStatus.REJECTED}),
    ReservationStatus.AWAITING_PAYMENT: frozenset({ReservationStatus.APPROVED, ReservationStatus.CANCELLED}),
    ReservationStatus.APPROVED: frozenset({ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED}),
    ReservationStatus.CHECKED_IN: frozenset(),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_code(prefix: Optional[str] = None) -> str:
    """Human-readable, practically unique code such as ``AMN-123456-X7KQ``."""
    prefix = prefix or get_settings().booking_code_prefix
    stamp = str(int(time_module.time() * 1000))[-6:]
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"{prefix}-{stamp}-{suffix}"


def ensure_transition(reservation: Reservation, target: ReservationStatus) -> None:
    current = reservation.status
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f"Reservation is already {current.value}")
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move reservation from {current.value} to {target.value}")


def _is_serialization_failure(exc: DBAPIError) -> bool:
    if getattr(exc.orig, "pgcode", None) in {"40001", "40P01"}:
        return True
    return "database is locked" in str(exc.orig)


def _begin_isolated(db: Session) -> None:
    level = get_settings().reservation_isolation_level
    if level and not db.in_transaction() and not is_sqlite(str(db.get_bind().url)):
        db.connection(execution_options={"isolation_level": level})


def _load_for_update(db: Session, reservation_id: int) -> Reservation:
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).with_for_update().first()
    if not reservation:
        raise ReservationNotFound()
    return reservation


def _expire_and_persist(db: Session, reservation: Reservation, now: datetime) -> None:
    if holds.expire_if_due(reservation, now):
        db.commit()
        publish_reservation_event("reservation.expired", reservation)


def _insert_reservation(db: Session, payload: ReservationCreate, now: datetime) -> Reservation:
    settings = get_settings()
    _begin_isolated(db)
    resource = lock_resource(db, payload.resource_id)
    if not resource.is_active:
        raise ResourceInactive()
    if payload.guest_count > resource.capacity:
        raise CapacityExceeded(f"Guest count exceeds capacity of {resource.capacity}")

    holds.sweep_expired_holds(db, now=now, resource_id=resource.id, reservation_date=payload.reservation_date)
    if conflicts.has_conflict(
        db,
        resource.id,
        payload.reservation_date,
        payload.start_time,
        payload.end_time,
        now=now,
        include_pending=settings.pending_claim_hours > 0,
    ):
        raise SlotUnavailable()

    hold_expires_at = None
    if settings.pending_claim_hours > 0:
        hold_expires_at = now + timedelta(hours=settings.pending_claim_hours)

    reservation = Reservation(
        booking_code=generate_booking_code(),
        total_amount=compute_total(resource, payload.start_time, payload.end_time, settings.pricing_rule),
        status=ReservationStatus.PENDING_REVIEW,
        payment_status=PaymentStatus.UNPAID,
        hold_expires_at=hold_expires_at,
        created_at=now,
        updated_at=now,
        **payload.model_dump(),
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


def create_reservation(db: Session, payload: ReservationCreate, now: Optional[datetime] = None) -> Reservation:
    """Atomically check the slot and insert a reservation in PENDING_REVIEW.

    A serialization failure from the database is retried
    ``conflict_retry_attempts`` times before it is reported as SLOT_UNAVAILABLE.
    """
    if payload.end_time <= payload.start_time:
        raise InvalidTimeRange()
    now = now or clock.utcnow()

    attempts = get_settings().conflict_retry_attempts + 1
    for attempt in range(1, attempts + 1):
        try:
            reservation = _insert_reservation(db, payload, now)
        except DBAPIError as exc:
            db.rollback()
            if not _is_serialization_failure(exc):
                raise
            logger.info("Serialization failure on create (attempt %d/%d)", attempt, attempts)
            continue
        except Exception:
            db.rollback()
            raise
        logger.info(
            "Reservation %s created for resource %s on %s %s-%s",
            reservation.booking_code,
            reservation.resource_id,
            reservation.reservation_date,
            reservation.start_time,
            reservation.end_time,
        )
        publish_reservation_event("reservation.created", reservation)
        return reservation
    raise SlotUnavailable()


def get_reservation(db: Session, reservation_id: int, now: Optional[datetime] = None) -> Reservation:
    now = now or clock.utcnow()
    with rollback_on_error(db):
        reservation = _load_for_update(db, reservation_id)
        _expire_and_persist(db, reservation, now)
    return reservation


def get_reservation_by_code(db: Session, booking_code: str, now: Optional[datetime] = None) -> Reservation:
    reservation_id = db.query(Reservation.id).filter(Reservation.booking_code == booking_code).scalar()
    if reservation_id is None:
        db.rollback()
        raise ReservationNotFound()
    return get_reservation(db, reservation_id, now=now)


def list_reservations(
    db: Session,
    status: Optional[ReservationStatus] = None,
    reservation_date: Optional[date] = None,
    resource_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Reservation]:
    with rollback_on_error(db):
        holds.sweep_expired_holds(db, now=now or clock.utcnow())
        db.commit()
    query = db.query(Reservation)
    if status is not None:
        query = query.filter(Reservation.status == status)
    if reservation_date is not None:
        query = query.filter(Reservation.reservation_date == reservation_date)
    if resource_id is not None:
        query = query.filter(Reservation.resource_id == resource_id)
    return query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()


def review_reservation(
    db: Session,
    reservation_id: int,
    actor: str,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Accept a request for payment; the slot becomes held exclusively.

    Requests awaiting review may overlap once their pending claims lapse, so
    the slot is checked again under the resource lock before the hold starts.
    """
    now = now or clock.utcnow()
    target = ReservationStatus.AWAITING_PAYMENT
    try:
        with rollback_on_error(db):
            _begin_isolated(db)
            resource_id = db.query(Reservation.resource_id).filter(Reservation.id == reservation_id).scalar()
            if resource_id is None:
                raise ReservationNotFound()
            lock_resource(db, resource_id)
            reservation = _load_for_update(db, reservation_id)
            ensure_transition(reservation, target)
            if conflicts.has_conflict(
                db,
                reservation.resource_id,
                reservation.reservation_date,
                reservation.start_time,
                reservation.end_time,
                exclude_id=reservation.id,
                now=now,
            ):
                raise SlotUnavailable("Slot was taken by another reservation")

            reservation.status = target
            reservation.payment_due_at = now + timedelta(hours=get_settings().payment_window_hours)
            reservation.reviewed_by = actor
            reservation.reviewed_at = now
            if remarks is not None:
                reservation.remarks = remarks
            db.commit()
    except DBAPIError as exc:
        if not _is_serialization_failure(exc):
            raise
        raise SlotUnavailable("Slot was taken by another reservation") from exc
    db.refresh(reservation)
    publish_reservation_event("reservation.reviewed", reservation)
    return reservation


def reject_reservation(
    db: Session,
    reservation_id: int,
    actor: str,
    reason: Optional[str] = None,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    now = now or clock.utcnow()
    with rollback_on_error(db):
        reservation = _load_for_update(db, reservation_id)
        ensure_transition(reservation, ReservationStatus.REJECTED)
        reservation.status = ReservationStatus.REJECTED
        reservation.rejected_by = actor
        reservation.rejected_at = now
        reservation.rejection_reason = reason
        if remarks is not None:
            reservation.remarks = remarks
        db.commit()
    db.refresh(reservation)
    publish_reservation_event("reservation.rejected", reservation)
    return reservation


def record_payment(
    db: Session,
    reservation_id: int,
    payment_status: PaymentStatus,
    payment_method: Optional[str] = None,
    payment_proof_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Update payment fields only; approval is still a separate staff step."""
    now = now or clock.utcnow()
    with rollback_on_error(db):
        reservation = _load_for_update(db, reservation_id)
        _expire_and_persist(db, reservation, now)
        if reservation.status != ReservationStatus.AWAITING_PAYMENT:
            raise InvalidTransition(f"Cannot record payment while reservation is {reservation.status.value}")

        reservation.payment_status = payment_status
        reservation.payment_method = payment_method
        reservation.payment_proof_url = payment_proof_url
        reservation.paid_at = now if payment_status in SETTLED_PAYMENT_STATUSES else None
        db.commit()
    db.refresh(reservation)
    publish_reservation_event("reservation.payment_recorded", reservation)
    return reservation


def approve_reservation(
    db: Session,
    reservation_id: int,
    actor: str,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    now = now or clock.utcnow()
    with rollback_on_error(db):
        reservation = _load_for_update(db, reservation_id)
        _expire_and_persist(db, reservation, now)
        ensure_transition(reservation, ReservationStatus.APPROVED)
        if reservation.payment_status not in SETTLED_PAYMENT_STATUSES:
            raise PaymentNotConfirmed()

        reservation.status = ReservationStatus.APPROVED
        reservation.approved_by = actor
        reservation.approved_at = now
        if remarks is not None:
            reservation.remarks = remarks
        issue_token(db, reservation, now=now)
        db.commit()
    db.refresh(reservation)
    publish_reservation_event("reservation.approved", reservation)
    return reservation


def cancel_reservation(
    db: Session,
    reservation_id: int,
    actor: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    now = now or clock.utcnow()
    with rollback_on_error(db):
        reservation = _load_for_update(db, reservation_id)
        _expire_and_persist(db, reservation, now)
        ensure_transition(reservation, ReservationStatus.CANCELLED)
        reservation.status = ReservationStatus.CANCELLED
        reservation.cancelled_by = actor
        reservation.cancelled_at = now
        reservation.cancellation_reason = reason
        db.commit()
    db.refresh(reservation)
    publish_reservation_event("reservation.cancelled", reservation)
    return reservation


def transition_reservation(
    db: Session,
    reservation_id: int,
    target: ReservationStatus,
    actor: str,
    reason: Optional[str] = None,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Dispatch a requested target status to the matching workflow step."""
    if target == ReservationStatus.AWAITING_PAYMENT:
        return review_reservation(db, reservation_id, actor, remarks=remarks, now=now)
    if target == ReservationStatus.REJECTED:
        return reject_reservation(db, reservation_id, actor, reason=reason, remarks=remarks, now=now)
    if target == ReservationStatus.APPROVED:
        return approve_reservation(db, reservation_id, actor, remarks=remarks, now=now)
    if target == ReservationStatus.CANCELLED:
        return cancel_reservation(db, reservation_id, actor, reason=reason, now=now)

    # PENDING_REVIEW is only an initial state and CHECKED_IN needs a token.
    reservation = get_reservation(db, reservation_id, now=now)
    db.rollback()
    raise InvalidTransition(f"Cannot move reservation from {reservation.status.value} to {target.value}")
