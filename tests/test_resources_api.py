from decimal import Decimal

from fastapi import status

from booking_engine.models import ResourceKind, ResourceType
from services.resources.app import resource_list_cache

SLOT = {"reservation_date": "2025-03-01", "start_time": "11:00", "end_time": "13:00"}


def _book(client, resource_id, start, end):
    response = client.post(
        "/reservations",
        json={
            "resource_id": resource_id,
            "reservation_date": "2025-03-01",
            "start_time": start,
            "end_time": end,
            "guest_count": 4,
            "requester_name": "Maria Santos",
            "requester_email": "maria.santos@example.com",
        },
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_list_resources_with_filters(resources_client, make_resource):
    make_resource()
    make_resource(name="Cottage 3", resource_type=ResourceType.COTTAGE, capacity=8)
    make_resource(name="Function Hall", kind=ResourceKind.VENUE, resource_type=ResourceType.FUNCTION_ROOM)
    make_resource(name="Old Pool", resource_type=ResourceType.POOL_AREA, is_active=False)

    everything = resources_client.get("/resources")
    venues = resources_client.get("/resources", params={"kind": "VENUE"})
    cottages = resources_client.get("/resources", params={"type": "COTTAGE"})
    active = resources_client.get("/resources", params={"active_only": True})

    assert [r["name"] for r in everything.json()] == ["Cottage 3", "Function Hall", "Old Pool", "Pavilion A"]
    assert [r["name"] for r in venues.json()] == ["Function Hall"]
    assert [r["capacity"] for r in cottages.json()] == [8]
    assert "Old Pool" not in [r["name"] for r in active.json()]


def test_resource_listing_is_cached(resources_client, make_resource):
    make_resource()
    first = resources_client.get("/resources").json()
    make_resource(name="Cottage 3")
    cached = resources_client.get("/resources").json()
    resource_list_cache.clear()
    fresh = resources_client.get("/resources").json()

    assert len(first) == len(cached) == 1
    assert len(fresh) == 2


def test_get_resource(resources_client, make_resource):
    resource_id = make_resource()

    found = resources_client.get(f"/resources/{resource_id}")
    missing = resources_client.get("/resources/9999")

    assert Decimal(found.json()["daily_rate"]) == Decimal("3000.00")
    assert missing.status_code == status.HTTP_404_NOT_FOUND
    assert missing.json()["code"] == "NOT_FOUND"


def test_check_availability(resources_client, reservations_client, make_resource):
    resource_id = make_resource()
    _book(reservations_client, resource_id, "10:00", "12:00")

    clash = resources_client.post(f"/resources/{resource_id}/check-availability", json=SLOT)
    adjacent = resources_client.post(
        f"/resources/{resource_id}/check-availability",
        json={**SLOT, "start_time": "12:00", "end_time": "14:00"},
    )
    backwards = resources_client.post(
        f"/resources/{resource_id}/check-availability",
        json={**SLOT, "start_time": "14:00", "end_time": "12:00"},
    )
    missing = resources_client.post("/resources/9999/check-availability", json=SLOT)

    assert clash.json() == {
        "reservation_date": "2025-03-01",
        "start_time": "11:00:00",
        "end_time": "13:00:00",
        "resource_id": resource_id,
        "available": False,
    }
    assert adjacent.json()["available"] is True
    assert backwards.status_code == status.HTTP_400_BAD_REQUEST
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_rejected_request_frees_availability(resources_client, reservations_client, make_resource):
    resource_id = make_resource()
    booking = _book(reservations_client, resource_id, "10:00", "12:00")
    reservations_client.put(
        f"/reservations/{booking['id']}/status",
        json={"status": "REJECTED", "actor": "admin", "reason": "Maintenance"},
    )

    response = resources_client.post(f"/resources/{resource_id}/check-availability", json=SLOT)

    assert response.json()["available"] is True


def test_schedule_lists_holding_reservations(resources_client, reservations_client, make_resource):
    resource_id = make_resource()
    afternoon = _book(reservations_client, resource_id, "13:00", "15:00")
    morning = _book(reservations_client, resource_id, "08:00", "10:00")
    rejected = _book(reservations_client, resource_id, "16:00", "17:00")
    reservations_client.put(
        f"/reservations/{rejected['id']}/status",
        json={"status": "REJECTED", "actor": "admin"},
    )

    schedule = resources_client.get(f"/resources/{resource_id}/schedule", params={"date": "2025-03-01"})
    other_day = resources_client.get(f"/resources/{resource_id}/schedule", params={"date": "2025-03-02"})

    assert [entry["booking_code"] for entry in schedule.json()] == [morning["booking_code"], afternoon["booking_code"]]
    assert schedule.json()[0] == {
        "booking_code": morning["booking_code"],
        "start_time": "08:00:00",
        "end_time": "10:00:00",
        "status": "PENDING_REVIEW",
    }
    assert other_day.json() == []
