from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from booking_engine import catalog, conflicts
from booking_engine.cache import ListingCache
from booking_engine.config import get_settings
from booking_engine.database import Base, engine, get_db
from booking_engine.dependencies import require_service_key
from booking_engine.errors import InvalidTimeRange, add_error_handlers
from booking_engine.logging_middleware import add_audit_middleware
from booking_engine.models import ResourceKind, ResourceType
from booking_engine.rate_limit import apply_rate_limiter, limiter
from booking_engine.schemas import AvailabilityRead, ResourceRead, ScheduleEntry, TimeSlot

settings = get_settings()
resource_list_cache: ListingCache[List[ResourceRead]] = ListingCache(ttl=settings.catalog_cache_ttl)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Resources Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "resources")
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "resources"}


@app.get("/resources", response_model=List[ResourceRead], dependencies=[Depends(require_service_key)])
@circuit(failure_threshold=5, recovery_timeout=60)
def list_resources(
    request: Request,
    type: Optional[ResourceType] = None,
    kind: Optional[ResourceKind] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
) -> List[ResourceRead]:
    filters = {"type": type, "kind": kind, "active_only": active_only}
    cached = resource_list_cache.get(**filters)
    if cached is not None:
        return cached

    resources = [
        ResourceRead.model_validate(resource)
        for resource in catalog.list_resources(db, type=type, kind=kind, active_only=active_only)
    ]
    resource_list_cache.set(resources, **filters)
    return resources


@app.get("/resources/{resource_id}", response_model=ResourceRead, dependencies=[Depends(require_service_key)])
@limiter.limit("60/minute")
def get_resource(request: Request, resource_id: int, db: Session = Depends(get_db)):
    return catalog.get_resource(db, resource_id)


@app.post(
    "/resources/{resource_id}/check-availability",
    response_model=AvailabilityRead,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("60/minute")
def check_availability(
    request: Request,
    resource_id: int,
    slot: TimeSlot,
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    if slot.end_time <= slot.start_time:
        raise InvalidTimeRange()
    catalog.get_resource(db, resource_id)
    available = not conflicts.has_conflict(
        db,
        resource_id,
        slot.reservation_date,
        slot.start_time,
        slot.end_time,
        include_pending=get_settings().pending_claim_hours > 0,
    )
    return AvailabilityRead(resource_id=resource_id, available=available, **slot.model_dump())


@app.get(
    "/resources/{resource_id}/schedule",
    response_model=List[ScheduleEntry],
    dependencies=[Depends(require_service_key)],
)
@limiter.limit("60/minute")
def resource_schedule(
    request: Request,
    resource_id: int,
    reservation_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> List[ScheduleEntry]:
    catalog.get_resource(db, resource_id)
    return [
        ScheduleEntry.model_validate(reservation, from_attributes=True)
        for reservation in conflicts.holding_reservations(
            db,
            resource_id,
            reservation_date,
            include_pending=get_settings().pending_claim_hours > 0,
        )
    ]
