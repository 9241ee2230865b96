"""Release of unpaid holds once their payment window has passed.

Expiry runs lazily on every path that touches a reservation and, for
housekeeping, as a periodic sweep. Both only ever move a reservation from
AWAITING_PAYMENT to CANCELLED, so running either repeatedly is harmless.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import clock
from .models import PaymentStatus, Reservation, ReservationStatus

logger = logging.getLogger(__name__)

EXPIRY_ACTOR = "system"
EXPIRY_REASON = "payment window expired"


def is_hold_expired(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    now = now or clock.utcnow()
    return (
        reservation.status == ReservationStatus.AWAITING_PAYMENT
        and reservation.payment_status == PaymentStatus.UNPAID
        and reservation.payment_due_at is not None
        and now > reservation.payment_due_at
    )


def expire_if_due(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    """Cancel a locked reservation in place if its hold has lapsed.

    The caller owns the transaction. Returns True when the reservation changed.
    """
    now = now or clock.utcnow()
    if not is_hold_expired(reservation, now):
        return False
    reservation.status = ReservationStatus.CANCELLED
    reservation.cancelled_by = EXPIRY_ACTOR
    reservation.cancelled_at = now
    reservation.cancellation_reason = EXPIRY_REASON
    logger.info("Hold expired for reservation %s", reservation.booking_code)
    return True


def sweep_expired_holds(
    db: Session,
    now: Optional[datetime] = None,
    resource_id: Optional[int] = None,
    reservation_date: Optional[date] = None,
) -> int:
    """Cancel every lapsed unpaid hold with one conditional UPDATE.

    Flushes but does not commit; the caller decides the transaction boundary.
    """
    now = now or clock.utcnow()
    stmt = (
        update(Reservation)
        .where(
            Reservation.status == ReservationStatus.AWAITING_PAYMENT,
            Reservation.payment_status == PaymentStatus.UNPAID,
            Reservation.payment_due_at.is_not(None),
            Reservation.payment_due_at < now,
        )
        .values(
            status=ReservationStatus.CANCELLED,
            cancelled_by=EXPIRY_ACTOR,
            cancelled_at=now,
            cancellation_reason=EXPIRY_REASON,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if resource_id is not None:
        stmt = stmt.where(Reservation.resource_id == resource_id)
    if reservation_date is not None:
        stmt = stmt.where(Reservation.reservation_date == reservation_date)
    expired = db.execute(stmt).rowcount or 0
    if expired:
        logger.info("Released %d expired hold(s)", expired)
    return expired


def run_sweep(db: Session, now: Optional[datetime] = None) -> int:
    """Standalone sweep used by the background task and maintenance endpoint."""
    expired = sweep_expired_holds(db, now=now)
    db.commit()
    return expired
