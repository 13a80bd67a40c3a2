from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from booking_availability.core.config import get_settings
from booking_availability.main import app
from booking_availability.services.availability_models import Booking, BookingStatus
from booking_availability.services.availability_store import (
    clear_availability_store_cache,
    create_availability_store,
)
from booking_availability.services.booking_store import (
    InMemoryBookingStore,
    clear_booking_store_cache,
    create_booking_store,
)
from booking_availability.services.store_errors import DataStoreError


@pytest.fixture(autouse=True)
def reset_booking_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATA_STORE", "memory")
    monkeypatch.setenv("AVAILABILITY_TIMEZONE", "Australia/Sydney")
    clear_availability_store_cache()
    clear_booking_store_cache()
    get_settings.cache_clear()
    create_availability_store(get_settings()).register_service("service-1", "provider-1")
    yield
    clear_availability_store_cache()
    clear_booking_store_cache()
    get_settings.cache_clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    store = create_booking_store(get_settings())
    assert isinstance(store, InMemoryBookingStore)
    return store


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_create_booking_starts_pending_at_local_slot_time(client: TestClient) -> None:
    response = client.post(
        "/api/bookings",
        json={"user_id": "user-1", "service_id": "service-1", "date": "2030-06-03", "time_slot": "10:00:00"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["status"] == "pending"
    assert payload["provider_id"] == "provider-1"
    assert payload["user_id"] == "user-1"
    # 10:00 in Sydney during June is midnight UTC.
    assert _parse(payload["scheduled_at"]) == datetime(2030, 6, 3, 0, 0, tzinfo=UTC)


def test_pending_booking_does_not_remove_slot(client: TestClient) -> None:
    client.post(
        "/api/bookings",
        json={"user_id": "user-1", "service_id": "service-1", "date": "2030-06-03", "time_slot": "10:00"},
    )

    response = client.get(
        "/api/availability/services/service-1/slots",
        params={"date": "2030-06-03"},
    )

    assert response.status_code == 200
    assert "10:00:00" in [item["time_value"] for item in response.json()["items"]]


def test_create_booking_for_unknown_service_returns_404(client: TestClient) -> None:
    response = client.post(
        "/api/bookings",
        json={"user_id": "user-1", "service_id": "missing", "date": "2030-06-03", "time_slot": "10:00:00"},
    )

    assert response.status_code == 404


def test_create_booking_rejects_malformed_time_slot(client: TestClient) -> None:
    response = client.post(
        "/api/bookings",
        json={"user_id": "user-1", "service_id": "service-1", "date": "2030-06-03", "time_slot": "10am"},
    )

    assert response.status_code == 422


def test_create_booking_requires_user(client: TestClient) -> None:
    response = client.post(
        "/api/bookings",
        json={"user_id": "  ", "service_id": "service-1", "date": "2030-06-03", "time_slot": "10:00:00"},
    )

    assert response.status_code == 422


def test_cancel_booking_flow(client: TestClient) -> None:
    created = client.post(
        "/api/bookings",
        json={"user_id": "user-1", "service_id": "service-1", "date": "2030-06-03", "time_slot": "11:00:00"},
    ).json()

    cancelled = client.post(f"/api/bookings/{created['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    cancelled_again = client.post(f"/api/bookings/{created['id']}/cancel")
    assert cancelled_again.status_code == 409


def test_cancel_missing_booking_returns_404(client: TestClient) -> None:
    response = client.post("/api/bookings/does-not-exist/cancel")

    assert response.status_code == 404


def test_list_bookings_splits_upcoming_and_past(
    client: TestClient,
    booking_store: InMemoryBookingStore,
) -> None:
    for booking_id, scheduled_at in (
        ("past-1", datetime(2020, 1, 6, 9, 0, tzinfo=UTC)),
        ("past-2", datetime(2020, 2, 3, 9, 0, tzinfo=UTC)),
        ("future-1", datetime(2099, 3, 2, 9, 0, tzinfo=UTC)),
        ("future-2", datetime(2099, 1, 5, 9, 0, tzinfo=UTC)),
    ):
        booking_store.add(
            Booking(
                id=booking_id,
                service_id="service-1",
                scheduled_at=scheduled_at,
                status=BookingStatus.CONFIRMED,
                provider_id="provider-1",
                user_id="user-1",
            ),
        )

    upcoming = client.get("/api/bookings", params={"user_id": "user-1"})
    past = client.get("/api/bookings", params={"user_id": "user-1", "upcoming": "false"})

    assert [item["id"] for item in upcoming.json()["items"]] == ["future-2", "future-1"]
    assert [item["id"] for item in past.json()["items"]] == ["past-2", "past-1"]


def test_bookings_report_bad_gateway_when_store_cannot_be_built(
    client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def failing_factory(settings):  # type: ignore[no-untyped-def]
        raise DataStoreError("MongoDB client setup failed: connection refused")

    monkeypatch.setattr("booking_availability.services.booking_service.create_booking_store", failing_factory)

    response = client.get("/api/bookings", params={"user_id": "user-1"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Booking data store is unavailable."
