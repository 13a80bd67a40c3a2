from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from fastapi import HTTPException, status

from booking_availability.core.config import Settings, get_settings
from booking_availability.schemas.booking import BookingRecord, BookingsResponse
from booking_availability.services.availability_models import Booking, BookingStatus, slot_instant
from booking_availability.services.availability_store import (
    AvailabilityStore,
    create_availability_store,
)
from booking_availability.services.booking_store import BookingStore, create_booking_store
from booking_availability.services.store_errors import DataStoreError

logger = logging.getLogger(__name__)

_FINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


class BookingService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        availability_store: AvailabilityStore | None = None,
        booking_store: BookingStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._availability_store = availability_store
        self._booking_store = booking_store
        self.clock = clock or (lambda: datetime.now(UTC))

    @property
    def availability_store(self) -> AvailabilityStore:
        if self._availability_store is None:
            self._availability_store = create_availability_store(self.settings)
        return self._availability_store

    @property
    def booking_store(self) -> BookingStore:
        if self._booking_store is None:
            self._booking_store = create_booking_store(self.settings)
        return self._booking_store

    def create_booking(
        self,
        *,
        user_id: str,
        service_id: str,
        day: date,
        time_slot: str,
    ) -> BookingRecord:
        normalized_user_id = user_id.strip()
        if not normalized_user_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Missing required booking information.",
            )

        scheduled_at = slot_instant(day, time_slot, ZoneInfo(self.settings.availability_timezone))
        with _booking_store_guard(f"create service_id={service_id}"):
            provider_id = self.availability_store.get_service_provider_id(service_id)
            if not provider_id:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Provider information not found for service.",
                )
            booking = self.booking_store.create_booking(
                user_id=normalized_user_id,
                service_id=service_id,
                provider_id=provider_id,
                scheduled_at=scheduled_at,
            )

        logger.info(
            "Booking created booking_id=%s service_id=%s scheduled_at=%s status=%s",
            booking.id,
            service_id,
            scheduled_at.isoformat(),
            booking.status.value,
        )
        return _map_booking(booking)

    def cancel_booking(self, booking_id: str) -> BookingRecord:
        with _booking_store_guard(f"cancel booking_id={booking_id}"):
            booking = self.booking_store.get_booking(booking_id.strip())
            if not booking:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Booking not found.",
                )
            if booking.status in _FINAL_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Cannot cancel booking because it is already {booking.status.value}.",
                )
            updated = self.booking_store.update_status(booking.id, BookingStatus.CANCELLED)
            if not updated:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Booking not found.",
                )

        logger.info("Booking cancelled booking_id=%s", updated.id)
        return _map_booking(updated)

    def list_bookings(self, *, user_id: str, upcoming: bool = True) -> BookingsResponse:
        with _booking_store_guard(f"list user_id={user_id}"):
            bookings = self.booking_store.list_bookings_for_user(
                user_id.strip(),
                now=self.clock(),
                upcoming=upcoming,
                limit=self.settings.bookings_list_limit,
            )
        return BookingsResponse(items=[_map_booking(booking) for booking in bookings])


@contextmanager
def _booking_store_guard(operation: str) -> Iterator[None]:
    try:
        yield
    except DataStoreError as exc:
        logger.warning("Booking store failure during %s error=%s", operation, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Booking data store is unavailable.",
        ) from exc


def _map_booking(booking: Booking) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        service_id=booking.service_id,
        provider_id=booking.provider_id,
        user_id=booking.user_id,
        scheduled_at=booking.scheduled_at,
        status=booking.status,
        created_at=booking.created_at,
    )
