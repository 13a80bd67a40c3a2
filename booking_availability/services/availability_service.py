from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import HTTPException, status

from booking_availability.core.config import Settings, get_settings
from booking_availability.schemas.availability import (
    AvailabilityRuleItem,
    AvailabilityRulesResponse,
    BatchAvailabilityResponse,
    BookedSlotItem,
    BookedSlotsResponse,
    SetTimeSlotAvailabilityResponse,
    TimeSlotAvailabilityUpdate,
    TimeSlotItem,
    TimeSlotsResponse,
)
from booking_availability.services.availability_models import (
    AvailabilityRule,
    BookingStatus,
)
from booking_availability.services.availability_resolver import resolve_time_slots
from booking_availability.services.availability_store import (
    AvailabilityStore,
    create_availability_store,
)
from booking_availability.services.booking_store import BookingStore, create_booking_store
from booking_availability.services.store_errors import DataStoreError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_FETCH_FAILED_DETAIL = "Failed to load availability data."
_WRITE_FAILED_DETAIL = "Failed to update availability data."


class AvailabilityService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        availability_store: AvailabilityStore | None = None,
        booking_store: BookingStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._availability_store = availability_store
        self._booking_store = booking_store
        self.clock = clock or _utc_now

    @property
    def availability_store(self) -> AvailabilityStore:
        # Resolved on first access, always from inside _fetch_guard.
        if self._availability_store is None:
            self._availability_store = create_availability_store(self.settings)
        return self._availability_store

    @property
    def booking_store(self) -> BookingStore:
        if self._booking_store is None:
            self._booking_store = create_booking_store(self.settings)
        return self._booking_store

    def list_time_slots(
        self,
        *,
        service_id: str,
        day: date,
        timezone_name: str | None = None,
    ) -> TimeSlotsResponse:
        resolved_timezone_name = (timezone_name or "").strip() or self.settings.availability_timezone
        tz = _load_timezone(resolved_timezone_name)

        with _fetch_guard(f"time slots service_id={service_id} date={day.isoformat()}"):
            provider_id = self.availability_store.get_service_provider_id(service_id)
            if not provider_id:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Provider information not found for service.",
                )
            rules = self.availability_store.list_rules(
                provider_id,
                service_id=service_id,
                start_date=day,
                end_date=day,
            )
            bookings = self.booking_store.list_bookings_for_service(
                service_id,
                statuses=(BookingStatus.CONFIRMED,),
            )

        slots = resolve_time_slots(
            service_id=service_id,
            day=day,
            rules=rules,
            bookings=bookings,
            now=self.clock(),
            tz=tz,
        )
        logger.info(
            "Resolved time slots service_id=%s date=%s rules=%s confirmed_bookings=%s slots=%s",
            service_id,
            day.isoformat(),
            len(rules),
            len(bookings),
            len(slots),
        )
        return TimeSlotsResponse(
            service_id=service_id,
            provider_id=provider_id,
            date=day,
            timezone=resolved_timezone_name,
            items=[
                TimeSlotItem(
                    id=slot.id,
                    time_value=slot.time_value,
                    display_time=slot.display_time,
                    is_available=slot.is_available,
                    source=slot.source,
                )
                for slot in slots
            ],
        )

    def list_rules(
        self,
        *,
        provider_id: str,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AvailabilityRulesResponse:
        _assert_date_range(start_date, end_date)
        with _fetch_guard(f"availability rules provider_id={provider_id}"):
            rules = self.availability_store.list_rules(
                provider_id,
                service_id=service_id,
                start_date=start_date,
                end_date=end_date,
            )
        return AvailabilityRulesResponse(items=[_map_rule(rule) for rule in rules])

    def set_time_slot_availability(
        self,
        *,
        provider_id: str,
        service_id: str,
        day: date,
        time_slot: str,
        available: bool,
    ) -> SetTimeSlotAvailabilityResponse:
        with _fetch_guard(f"availability update provider_id={provider_id}", detail=_WRITE_FAILED_DETAIL):
            existing = self.availability_store.find_rule(
                provider_id=provider_id,
                service_id=service_id,
                day=day,
                time_slot=time_slot,
            )
            if existing:
                if available:
                    return SetTimeSlotAvailabilityResponse(operation="unchanged", rule=_map_rule(existing))
                self.availability_store.delete_rule(existing.id)
                logger.info(
                    "Availability rule deleted provider_id=%s service_id=%s date=%s time_slot=%s",
                    provider_id,
                    service_id,
                    day.isoformat(),
                    time_slot,
                )
                return SetTimeSlotAvailabilityResponse(operation="deleted")

            if not available:
                return SetTimeSlotAvailabilityResponse(operation="unchanged")

            inserted = self.availability_store.insert_rules(
                [
                    AvailabilityRule(
                        id="",
                        provider_id=provider_id,
                        service_id=service_id,
                        date=day,
                        time_slot=time_slot,
                        available=True,
                    ),
                ],
            )
        logger.info(
            "Availability rule inserted provider_id=%s service_id=%s date=%s time_slot=%s",
            provider_id,
            service_id,
            day.isoformat(),
            time_slot,
        )
        return SetTimeSlotAvailabilityResponse(
            operation="inserted",
            rule=_map_rule(inserted[0]) if inserted else None,
        )

    def batch_update_availability(
        self,
        *,
        provider_id: str,
        service_id: str,
        slots: Sequence[TimeSlotAvailabilityUpdate],
    ) -> BatchAvailabilityResponse:
        if not slots:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="No slots to update.",
            )

        to_insert: list[AvailabilityRule] = []
        to_delete: list[str] = []
        with _fetch_guard(
            f"availability batch update provider_id={provider_id}",
            detail=_WRITE_FAILED_DETAIL,
        ):
            for slot in slots:
                existing = self.availability_store.find_rule(
                    provider_id=provider_id,
                    service_id=service_id,
                    day=slot.date,
                    time_slot=slot.time_slot,
                )
                if existing:
                    if not slot.available and existing.id not in to_delete:
                        to_delete.append(existing.id)
                    continue
                if slot.available and not _is_queued(to_insert, slot):
                    to_insert.append(
                        AvailabilityRule(
                            id="",
                            provider_id=provider_id,
                            service_id=service_id,
                            date=slot.date,
                            time_slot=slot.time_slot,
                            available=True,
                        ),
                    )

            if to_insert:
                self.availability_store.insert_rules(to_insert)
            for rule_id in to_delete:
                self.availability_store.delete_rule(rule_id)

        logger.info(
            "Availability batch applied provider_id=%s service_id=%s inserted=%s deleted=%s",
            provider_id,
            service_id,
            len(to_insert),
            len(to_delete),
        )
        return BatchAvailabilityResponse(inserted=len(to_insert), deleted=len(to_delete))

    def apply_recurring_pattern(
        self,
        *,
        provider_id: str,
        service_id: str,
        days_of_week: Sequence[int],
        time_slots: Sequence[str],
        start_date: date,
        end_date: date,
        set_available: bool = True,
    ) -> BatchAvailabilityResponse:
        _assert_date_range(start_date, end_date)
        slots = [
            TimeSlotAvailabilityUpdate(date=day, time_slot=time_slot, available=set_available)
            for day in _iter_days(start_date, end_date)
            if _sunday_based_weekday(day) in days_of_week
            for time_slot in time_slots
        ]
        if not slots:
            return BatchAvailabilityResponse()
        return self.batch_update_availability(
            provider_id=provider_id,
            service_id=service_id,
            slots=slots,
        )

    def list_booked_slots(
        self,
        *,
        provider_id: str,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> BookedSlotsResponse:
        _assert_date_range(start_date, end_date)
        tz = _load_timezone(self.settings.availability_timezone)
        starts_at = datetime.combine(start_date, time.min, tzinfo=tz) if start_date else None
        ends_at = datetime.combine(end_date, time.max, tzinfo=tz) if end_date else None

        with _fetch_guard(f"booked slots provider_id={provider_id}"):
            bookings = self.booking_store.list_bookings_for_provider(
                provider_id,
                statuses=(BookingStatus.CONFIRMED, BookingStatus.PENDING),
                service_id=service_id,
                starts_at=starts_at,
                ends_at=ends_at,
            )

        items: list[BookedSlotItem] = []
        for booking in bookings:
            local_scheduled_at = _to_zone(booking.scheduled_at, tz)
            items.append(
                BookedSlotItem(
                    id=booking.id,
                    service_id=booking.service_id,
                    date=local_scheduled_at.date(),
                    time_value=local_scheduled_at.strftime("%H:%M:%S"),
                    status=booking.status.value,
                ),
            )
        return BookedSlotsResponse(items=items)


@contextmanager
def _fetch_guard(operation: str, *, detail: str = _FETCH_FAILED_DETAIL) -> Iterator[None]:
    try:
        yield
    except DataStoreError as exc:
        logger.warning("Data store failure during %s error=%s", operation, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
        ) from exc


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _load_timezone(timezone_name: str) -> tzinfo:
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown timezone: {timezone_name}.",
        ) from exc


def _to_zone(instant: datetime, tz: tzinfo) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant.astimezone(tz)


def _assert_date_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start_date must be on or before end_date.",
        )


def _iter_days(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def _sunday_based_weekday(day: date) -> int:
    return day.isoweekday() % 7


def _is_queued(queued: list[AvailabilityRule], slot: TimeSlotAvailabilityUpdate) -> bool:
    return any(rule.date == slot.date and rule.time_slot == slot.time_slot for rule in queued)


def _map_rule(rule: AvailabilityRule) -> AvailabilityRuleItem:
    return AvailabilityRuleItem(
        id=rule.id,
        provider_id=rule.provider_id,
        service_id=rule.service_id,
        date=rule.date,
        time_slot=rule.time_slot,
        available=rule.available,
    )
