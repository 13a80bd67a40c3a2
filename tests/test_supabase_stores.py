import io
import json
from datetime import UTC, date, datetime
from urllib import error, parse

import pytest

from booking_availability.services.availability_models import AvailabilityRule, BookingStatus
from booking_availability.services.availability_store import SupabaseAvailabilityStore
from booking_availability.services.booking_store import SupabaseBookingStore
from booking_availability.services.store_errors import DataStoreError
from booking_availability.services.supabase_client import SupabaseApiError, SupabaseRestClient


class _MockResponse:
    def __init__(self, payload: object) -> None:
        self._payload = json.dumps(payload).encode("utf-8")

    def __enter__(self) -> "_MockResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # type: ignore[no-untyped-def]
        return False

    def read(self) -> bytes:
        return self._payload


def _http_error(status_code: int, payload: dict[str, object]) -> error.HTTPError:
    return error.HTTPError(
        url="https://project.supabase.co/rest/v1/provider_availability",
        code=status_code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(json.dumps(payload).encode("utf-8")),
    )


def _client() -> SupabaseRestClient:
    return SupabaseRestClient(url="https://project.supabase.co/", api_key="anon-key")


def _query(url: str) -> list[tuple[str, str]]:
    return parse.parse_qsl(parse.urlsplit(url).query)


def test_select_sends_postgrest_filters_and_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        captured["url"] = req.full_url
        captured["method"] = req.get_method()
        captured["apikey"] = req.headers.get("Apikey")
        captured["authorization"] = req.headers.get("Authorization")
        return _MockResponse(
            [
                {
                    "id": "rule-1",
                    "provider_id": "provider-1",
                    "service_id": "service-1",
                    "date": "2024-06-03",
                    "time_slot": "09:00:00",
                    "available": True,
                },
            ],
        )

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseAvailabilityStore(_client())
    rules = store.list_rules(
        "provider-1",
        service_id="service-1",
        start_date=date(2024, 6, 3),
        end_date=date(2024, 6, 3),
    )

    assert rules == [
        AvailabilityRule(
            id="rule-1",
            provider_id="provider-1",
            service_id="service-1",
            date=date(2024, 6, 3),
            time_slot="09:00:00",
            available=True,
        ),
    ]
    assert str(captured["url"]).startswith("https://project.supabase.co/rest/v1/provider_availability?")
    assert captured["method"] == "GET"
    assert captured["apikey"] == "anon-key"
    assert captured["authorization"] == "Bearer anon-key"
    assert _query(str(captured["url"])) == [
        ("select", "*"),
        ("provider_id", "eq.provider-1"),
        ("service_id", "eq.service-1"),
        ("date", "gte.2024-06-03"),
        ("date", "lte.2024-06-03"),
        ("order", "date.asc,time_slot.asc"),
    ]


def test_service_provider_lookup_reads_services_table(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, str] = {}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        captured["url"] = req.full_url
        return _MockResponse([{"provider_id": "provider-9"}])

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseAvailabilityStore(_client())

    assert store.get_service_provider_id("service-1") == "provider-9"
    assert ("select", "provider_id") in _query(captured["url"])
    assert ("id", "eq.service-1") in _query(captured["url"])


def test_http_errors_become_data_store_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        raise _http_error(503, {"message": "upstream unavailable"})

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseAvailabilityStore(_client())
    with pytest.raises(DataStoreError, match="HTTP 503"):
        store.list_rules("provider-1")


def test_connection_errors_raise_supabase_api_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        raise error.URLError("name resolution failed")

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    with pytest.raises(SupabaseApiError, match="connection error"):
        _client().select("services")


def test_missing_url_is_reported_without_network_call() -> None:
    client = SupabaseRestClient(url="", api_key="anon-key")

    with pytest.raises(SupabaseApiError, match="not configured"):
        client.select("services")


def test_confirmed_bookings_are_requested_by_status(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, str] = {}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        captured["url"] = req.full_url
        return _MockResponse(
            [
                {
                    "id": 17,
                    "service_id": "service-1",
                    "scheduled_at": "2024-06-03T13:02:00+00:00",
                    "status": "confirmed",
                },
            ],
        )

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseBookingStore(_client())
    bookings = store.list_bookings_for_service("service-1", statuses=(BookingStatus.CONFIRMED,))

    assert len(bookings) == 1
    assert bookings[0].id == "17"
    assert bookings[0].status == BookingStatus.CONFIRMED
    assert bookings[0].scheduled_at == datetime(2024, 6, 3, 13, 2, tzinfo=UTC)
    assert captured["url"].startswith("https://project.supabase.co/rest/v1/service_bookings?")
    assert ("status", "in.(confirmed)") in _query(captured["url"])


def test_create_booking_posts_pending_row(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        captured["method"] = req.get_method()
        captured["prefer"] = req.headers.get("Prefer")
        body = json.loads(req.data.decode("utf-8"))
        captured["body"] = body
        return _MockResponse([{**body[0], "id": "booking-1"}])

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseBookingStore(_client())
    booking = store.create_booking(
        user_id="user-1",
        service_id="service-1",
        provider_id="provider-1",
        scheduled_at=datetime(2024, 6, 3, 10, 0, tzinfo=UTC),
    )

    assert captured["method"] == "POST"
    assert captured["prefer"] == "return=representation"
    body = captured["body"]
    assert isinstance(body, list)
    assert body[0]["status"] == "pending"
    assert body[0]["scheduled_at"] == "2024-06-03T10:00:00+00:00"
    assert booking.id == "booking-1"
    assert booking.status == BookingStatus.PENDING
    assert booking.provider_id == "provider-1"


def test_invalid_json_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BrokenResponse(_MockResponse):
        def read(self) -> bytes:
            return b"<html>"

    def fake_urlopen(req, timeout=10):  # type: ignore[no-untyped-def]
        return _BrokenResponse([])

    monkeypatch.setattr("booking_availability.services.supabase_client.request.urlopen", fake_urlopen)

    store = SupabaseBookingStore(_client())
    with pytest.raises(DataStoreError, match="invalid JSON"):
        store.get_booking("booking-1")
