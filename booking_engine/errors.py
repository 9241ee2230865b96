"""Domain errors raised by the engine and their HTTP rendering."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

VALIDATION = "validation"
CONFLICT = "conflict"
STATE = "state"
INTEGRITY = "integrity"


class ReservationError(Exception):
    """Base class for every error the engine surfaces to callers."""

    code = "RESERVATION_ERROR"
    category = VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Reservation request failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidTimeRange(ReservationError):
    code = "VALIDATION_ERROR"
    default_detail = "End time must be after start time"


class CapacityExceeded(ReservationError):
    code = "CAPACITY_EXCEEDED"
    default_detail = "Guest count exceeds resource capacity"


class ResourceInactive(ReservationError):
    code = "RESOURCE_INACTIVE"
    default_detail = "Resource is not accepting reservations"


class ResourceNotFound(ReservationError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ReservationNotFound(ReservationError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Reservation not found"


class InvalidToken(ReservationError):
    code = "INVALID_TOKEN"
    default_detail = "Check-in token is not valid"


class SlotUnavailable(ReservationError):
    code = "SLOT_UNAVAILABLE"
    category = CONFLICT
    default_detail = "Selected time slot is not available"


class InvalidTransition(ReservationError):
    code = "INVALID_TRANSITION"
    category = STATE
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Transition not allowed from the current status"


class PaymentNotConfirmed(ReservationError):
    code = "PAYMENT_NOT_CONFIRMED"
    category = STATE
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Payment must be recorded before approval"


class TokenAlreadyUsed(ReservationError):
    code = "TOKEN_ALREADY_USED"
    category = INTEGRITY
    status_code = status.HTTP_409_CONFLICT
    default_detail = "QR code already used. Possible fraud attempt."


def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    headers = {}
    if exc.category == INTEGRITY:
        headers["X-Fraud-Alert"] = "1"
        logger.warning("%s %s | %s | %s", request.method, request.url.path, exc.code, exc.detail)
    elif exc.category == STATE:
        logger.info("%s %s | %s | %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "category": exc.category},
        headers=headers,
    )


def add_error_handlers(app: FastAPI) -> None:
    """Render engine errors as JSON with their code and category."""

    app.add_exception_handler(ReservationError, reservation_error_handler)
