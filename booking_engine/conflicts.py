"""Overlap detection for reservations on the same resource and day."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session

from . import clock
from .models import BLOCKING_STATUSES, PaymentStatus, Reservation, ReservationStatus


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open intervals [start, end) overlap iff each starts before the other ends."""
    return start_a < end_b and start_b < end_a


def _holding_clause(now: datetime, include_pending: bool):
    # Lapsed unpaid holds no longer occupy the slot, even before the sweep
    # has persisted their cancellation.
    live_payment_hold = and_(
        Reservation.status == ReservationStatus.AWAITING_PAYMENT,
        or_(
            Reservation.payment_status != PaymentStatus.UNPAID,
            Reservation.payment_due_at.is_(None),
            Reservation.payment_due_at >= now,
        ),
    )
    clauses = [
        live_payment_hold,
        Reservation.status.in_(sorted(BLOCKING_STATUSES - {ReservationStatus.AWAITING_PAYMENT})),
    ]
    if include_pending:
        clauses.append(
            and_(
                Reservation.status == ReservationStatus.PENDING_REVIEW,
                Reservation.hold_expires_at.is_not(None),
                Reservation.hold_expires_at > now,
            )
        )
    return or_(*clauses)


def conflicting_reservations(
    db: Session,
    resource_id: int,
    reservation_date: date,
    start: time,
    end: time,
    exclude_id: Optional[int] = None,
    now: Optional[datetime] = None,
    include_pending: bool = False,
) -> Query:
    query = db.query(Reservation).filter(
        Reservation.resource_id == resource_id,
        Reservation.reservation_date == reservation_date,
        Reservation.start_time < end,
        Reservation.end_time > start,
        _holding_clause(now or clock.utcnow(), include_pending),
    )
    if exclude_id is not None:
        query = query.filter(Reservation.id != exclude_id)
    return query


def has_conflict(
    db: Session,
    resource_id: int,
    reservation_date: date,
    start: time,
    end: time,
    exclude_id: Optional[int] = None,
    now: Optional[datetime] = None,
    include_pending: bool = False,
) -> bool:
    query = conflicting_reservations(
        db,
        resource_id,
        reservation_date,
        start,
        end,
        exclude_id=exclude_id,
        now=now,
        include_pending=include_pending,
    )
    return db.query(query.exists()).scalar()


def holding_reservations(
    db: Session,
    resource_id: int,
    reservation_date: date,
    now: Optional[datetime] = None,
    include_pending: bool = False,
) -> List[Reservation]:
    """Reservations currently occupying some part of the given day."""
    return (
        db.query(Reservation)
        .filter(
            Reservation.resource_id == resource_id,
            Reservation.reservation_date == reservation_date,
            _holding_clause(now or clock.utcnow(), include_pending),
        )
        .order_by(Reservation.start_time.asc())
        .all()
    )
