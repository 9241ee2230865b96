import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from booking_engine import holds, reservations, tokens
from booking_engine.config import get_settings
from booking_engine.database import Base, SessionLocal, engine, get_db
from booking_engine.dependencies import require_service_key
from booking_engine.errors import add_error_handlers
from booking_engine.logging_middleware import add_audit_middleware, configure_fraud_log
from booking_engine.models import Reservation, ReservationStatus
from booking_engine.rate_limit import apply_rate_limiter, limiter
from booking_engine.schemas import (
    CancelRequest,
    CheckInRequest,
    PaymentUpdate,
    ReservationCreate,
    ReservationRead,
    StatusUpdate,
    SweepResult,
    TokenReuseRead,
)

settings = get_settings()
logger = logging.getLogger(__name__)


def _sweep_once() -> int:
    db = SessionLocal()
    try:
        return holds.run_sweep(db)
    finally:
        db.close()


async def _sweep_forever(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(_sweep_once)
        except Exception:
            logger.exception("Hold sweep failed")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    sweeper = None
    if settings.hold_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(_sweep_forever(settings.hold_sweep_interval_seconds))
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Reservations Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "reservations")
    configure_fraud_log("reservations")
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reservations"}


@app.post(
    "/reservations",
    response_model=ReservationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("20/minute")
def create_reservation(
    request: Request,
    reservation_in: ReservationCreate,
    db: Session = Depends(get_db),
) -> Reservation:
    return reservations.create_reservation(db, reservation_in)


@app.get("/reservations", response_model=List[ReservationRead], dependencies=[Depends(require_service_key)])
@limiter.limit("60/minute")
def list_reservations(
    request: Request,
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    reservation_date: Optional[date] = Query(None, alias="date"),
    resource_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> List[Reservation]:
    return reservations.list_reservations(
        db, status=status_filter, reservation_date=reservation_date, resource_id=resource_id
    )


@app.get(
    "/reservations/code/{booking_code}",
    response_model=ReservationRead,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("60/minute")
def get_reservation_by_code(request: Request, booking_code: str, db: Session = Depends(get_db)) -> Reservation:
    return reservations.get_reservation_by_code(db, booking_code)


@app.get("/reservations/{reservation_id}", response_model=ReservationRead, dependencies=[Depends(require_service_key)])
@limiter.limit("60/minute")
def get_reservation(request: Request, reservation_id: int, db: Session = Depends(get_db)) -> Reservation:
    return reservations.get_reservation(db, reservation_id)


@app.put(
    "/reservations/{reservation_id}/status",
    response_model=ReservationRead,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("30/minute")
def update_status(
    request: Request,
    reservation_id: int,
    status_update: StatusUpdate,
    db: Session = Depends(get_db),
) -> Reservation:
    return reservations.transition_reservation(
        db,
        reservation_id,
        status_update.status,
        status_update.actor,
        reason=status_update.reason,
        remarks=status_update.remarks,
    )


@app.put(
    "/reservations/{reservation_id}/payment",
    response_model=ReservationRead,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("30/minute")
def update_payment(
    request: Request,
    reservation_id: int,
    payment: PaymentUpdate,
    db: Session = Depends(get_db),
) -> Reservation:
    return reservations.record_payment(
        db,
        reservation_id,
        payment.payment_status,
        payment_method=payment.payment_method,
        payment_proof_url=payment.payment_proof_url,
    )


@app.post(
    "/reservations/{reservation_id}/cancel",
    response_model=ReservationRead,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("30/minute")
def cancel_reservation(
    request: Request,
    reservation_id: int,
    cancel: CancelRequest,
    db: Session = Depends(get_db),
) -> Reservation:
    return reservations.cancel_reservation(db, reservation_id, cancel.cancelled_by, reason=cancel.reason)


@app.post(
    "/reservations/{reservation_id}/check-in",
    response_model=ReservationRead,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("60/minute")
def check_in(
    request: Request,
    reservation_id: int,
    check_in_request: CheckInRequest,
    db: Session = Depends(get_db),
) -> Reservation:
    return tokens.consume_token(
        db,
        check_in_request.token,
        check_in_request.checked_in_by,
        reservation_id=reservation_id,
    )


@app.get("/audit/token-reuse", response_model=List[TokenReuseRead], dependencies=[Depends(require_service_key)])
@limiter.limit("30/minute")
def token_reuse_attempts(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list:
    return tokens.list_reuse_attempts(db, limit=limit)


@app.post("/maintenance/expire-holds", response_model=SweepResult, dependencies=[Depends(require_service_key)])
def expire_holds(db: Session = Depends(get_db)) -> SweepResult:
    return SweepResult(expired=holds.run_sweep(db))
