"""Single-use check-in tokens and their QR rendering."""
from __future__ import annotations

import base64
import logging
import secrets
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Dict, List, Optional

import qrcode
from jose import JWTError, jwt
from sqlalchemy import update
from sqlalchemy.orm import Session

from . import clock
from .config import get_settings
from .database import rollback_on_error
from .errors import InvalidToken, InvalidTransition, TokenAlreadyUsed
from .events import publish_reservation_event
from .models import CheckInToken, Reservation, ReservationStatus, TokenReuseAttempt, TokenState

logger = logging.getLogger(__name__)
fraud_logger = logging.getLogger("booking_engine.fraud")


def _sign(claims: Dict[str, Any]) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.checkin_token_secret, algorithm=settings.checkin_token_algorithm)


def verify_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.checkin_token_secret, algorithms=[settings.checkin_token_algorithm])
    except JWTError as exc:
        raise InvalidToken() from exc


def render_qr_code(payload: str) -> str:
    """Render a payload as a PNG data URL."""
    qr = qrcode.QRCode(version=None, box_size=6, border=4)
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    img_base64 = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_base64}"


def issue_token(db: Session, reservation: Reservation, now: Optional[datetime] = None) -> CheckInToken:
    """Create the one check-in token of an approved reservation.

    Flushes but does not commit.
    """
    now = now or clock.utcnow()
    claims = {
        "code": reservation.booking_code,
        "resource": reservation.resource_id,
        "date": reservation.reservation_date.isoformat(),
        "requester": reservation.requester_name,
        "nonce": secrets.token_urlsafe(16),
        "iat": int(now.replace(tzinfo=timezone.utc).timestamp()),
    }
    check_in_token = CheckInToken(
        token=_sign(claims),
        reservation_id=reservation.id,
        state=TokenState.ISSUED,
        issued_at=now,
    )
    db.add(check_in_token)
    reservation.qr_code = render_qr_code(check_in_token.token)
    db.flush()
    return check_in_token


def _record_reuse(db: Session, check_in_token: CheckInToken, checker: str, now: datetime) -> None:
    db.add(
        TokenReuseAttempt(
            token_id=check_in_token.id,
            reservation_id=check_in_token.reservation_id,
            attempted_by=checker,
            attempted_at=now,
        )
    )
    db.commit()
    fraud_logger.warning(
        "Check-in token reuse | reservation=%s | attempted_by=%s | first_used_by=%s",
        check_in_token.reservation_id,
        checker,
        check_in_token.consumed_by,
    )


def consume_token(
    db: Session,
    token: str,
    checker: str,
    reservation_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Reservation:
    """Check a reservation in by consuming its token exactly once.

    The consume is a conditional UPDATE; of any number of concurrent callers
    presenting the same token, exactly one sees a matched row. A consumed
    token is reported as reuse whichever reservation it is presented for.
    """
    now = now or clock.utcnow()
    claims = verify_token(token)

    with rollback_on_error(db):
        check_in_token = db.query(CheckInToken).filter(CheckInToken.token == token).first()
        if check_in_token is None:
            raise InvalidToken()
        if check_in_token.state == TokenState.CONSUMED:
            _record_reuse(db, check_in_token, checker, now)
            raise TokenAlreadyUsed()
        if reservation_id is not None and check_in_token.reservation_id != reservation_id:
            raise InvalidToken("Check-in token does not belong to this reservation")

        reservation = (
            db.query(Reservation).filter(Reservation.id == check_in_token.reservation_id).with_for_update().one()
        )
        if claims.get("code") != reservation.booking_code:
            raise InvalidToken()

        consumed = db.execute(
            update(CheckInToken)
            .where(CheckInToken.id == check_in_token.id, CheckInToken.state == TokenState.ISSUED)
            .values(state=TokenState.CONSUMED, consumed_at=now, consumed_by=checker)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not consumed:
            db.refresh(check_in_token)
            _record_reuse(db, check_in_token, checker, now)
            raise TokenAlreadyUsed()

        if reservation.status != ReservationStatus.APPROVED:
            raise InvalidTransition(f"Cannot check in a reservation in status {reservation.status.value}")

        reservation.status = ReservationStatus.CHECKED_IN
        reservation.checked_in_at = now
        reservation.checked_in_by = checker
        db.commit()
    db.refresh(reservation)
    logger.info("Reservation %s checked in by %s", reservation.booking_code, checker)
    publish_reservation_event("reservation.checked_in", reservation)
    return reservation


def list_reuse_attempts(db: Session, limit: int = 100) -> List[TokenReuseAttempt]:
    return (
        db.query(TokenReuseAttempt)
        .order_by(TokenReuseAttempt.attempted_at.desc(), TokenReuseAttempt.id.desc())
        .limit(limit)
        .all()
    )
