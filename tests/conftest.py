import os
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("HOLD_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("EVENT_BROKER_HOST", "")
os.environ.setdefault("LOG_DIR", "./logs")

from booking_engine.config import get_settings, reset_settings_cache  # noqa: E402

reset_settings_cache()

from booking_engine import clock  # noqa: E402
from booking_engine.database import Base, SessionLocal, engine  # noqa: E402
from booking_engine.models import Resource, ResourceKind, ResourceType  # noqa: E402
from booking_engine.schemas import ReservationCreate  # noqa: E402
from services.reservations.app import app as reservations_app  # noqa: E402
from services.resources.app import app as resources_app, resource_list_cache  # noqa: E402

SERVICE_HEADERS = {"X-Service-Key": get_settings().service_api_key}
BOOKING_DATE = date(2025, 3, 1)


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    resource_list_cache.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_resource() -> Callable[..., int]:
    """Insert a resource in its own session and return its id."""

    def _make(
        name: str = "Pavilion A",
        capacity: int = 50,
        hourly_rate: str = "500.00",
        daily_rate: str = "3000.00",
        is_active: bool = True,
        resource_type: ResourceType = ResourceType.PAVILION,
        kind: ResourceKind = ResourceKind.AMENITY,
    ) -> int:
        session = SessionLocal()
        try:
            resource = Resource(
                name=name,
                kind=kind,
                type=resource_type,
                capacity=capacity,
                hourly_rate=Decimal(hourly_rate),
                daily_rate=Decimal(daily_rate),
                is_active=is_active,
            )
            session.add(resource)
            session.commit()
            return resource.id
        finally:
            session.close()

    return _make


@pytest.fixture()
def reservation_payload() -> Callable[..., ReservationCreate]:
    def _payload(
        resource_id: int,
        start: time = time(9, 0),
        end: time = time(12, 0),
        reservation_date: date = BOOKING_DATE,
        guest_count: int = 10,
        requester_name: str = "Juan Dela Cruz",
    ) -> ReservationCreate:
        return ReservationCreate(
            resource_id=resource_id,
            reservation_date=reservation_date,
            start_time=start,
            end_time=end,
            guest_count=guest_count,
            requester_name=requester_name,
            requester_email="juan.delacruz@example.com",
            requester_phone="0917-123-4567",
        )

    return _payload


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def frozen_clock(monkeypatch) -> FrozenClock:
    frozen = FrozenClock(datetime(2025, 2, 20, 8, 0, 0))
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


@pytest.fixture()
def reservations_client() -> Generator[TestClient, None, None]:
    with TestClient(reservations_app) as client:
        client.headers.update(SERVICE_HEADERS)
        yield client


@pytest.fixture()
def resources_client() -> Generator[TestClient, None, None]:
    with TestClient(resources_app) as client:
        client.headers.update(SERVICE_HEADERS)
        yield client
