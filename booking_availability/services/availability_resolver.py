"""
Bookable time slot resolution.

Pure computation over a snapshot of provider availability rules and
confirmed bookings. All I/O happens in the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta, tzinfo

from booking_availability.services.availability_models import (
    AvailabilityRule,
    Booking,
    BookingStatus,
    InvalidTimeSlotError,
    SlotSource,
    TimeSlot,
    localize,
    parse_time_slot,
    slot_instant,
)

DEFAULT_FIRST_HOUR = 9
DEFAULT_LAST_HOUR = 17
BOOKING_CONFLICT_TOLERANCE = timedelta(minutes=5)
_WEEKEND_DAYS = frozenset({5, 6})


def resolve_time_slots(
    *,
    service_id: str,
    day: date,
    rules: Iterable[AvailabilityRule],
    bookings: Iterable[Booking],
    now: datetime,
    tz: tzinfo,
) -> list[TimeSlot]:
    """
    Returns the slots a client may book for ``service_id`` on ``day``.

    Args:
        service_id: service being booked
        day: calendar day, no time component
        rules: availability rules of the service's provider for that day
        bookings: bookings of the service; only confirmed ones block slots
        now: current instant, naive values are read in ``tz``
        tz: zone used to turn ``day`` + time slot into an instant

    Returns:
        list[TimeSlot] sorted by time of day, possibly empty.

    Raises:
        InvalidTimeSlotError: a rule carries a malformed time slot or ``day`` is missing.
    """
    if day is None or isinstance(day, datetime):
        raise InvalidTimeSlotError("A calendar date without time component is required.")

    day_rules = [
        rule
        for rule in rules
        if rule.date == day and rule.service_id == service_id
    ]
    candidates = _candidate_slots(day, day_rules)
    candidates.sort(key=lambda candidate: candidate[1])

    blocking_instants = [
        localize(booking.scheduled_at, tz)
        for booking in bookings
        if booking.status == BookingStatus.CONFIRMED and booking.service_id == service_id
    ]
    current_instant = localize(now, tz)

    resolved: list[TimeSlot] = []
    for slot_id, time_value, source in candidates:
        candidate_instant = slot_instant(day, time_value, tz)
        if _conflicts_with_booking(candidate_instant, blocking_instants):
            continue
        if candidate_instant <= current_instant:
            continue
        resolved.append(
            TimeSlot(
                id=slot_id,
                time_value=time_value,
                display_time=format_time_slot(time_value),
                is_available=True,
                source=source,
            ),
        )
    return resolved


def generate_default_time_slots(day: date) -> list[str]:
    if day.weekday() in _WEEKEND_DAYS:
        return []
    return [f"{hour:02d}:00:00" for hour in range(DEFAULT_FIRST_HOUR, DEFAULT_LAST_HOUR + 1)]


def format_time_slot(time_value: str) -> str:
    parse_time_slot(time_value)
    hours, minutes, _ = time_value.split(":")
    hour = int(hours)
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display_hour}:{minutes} {period}"


def _candidate_slots(
    day: date,
    day_rules: list[AvailabilityRule],
) -> list[tuple[str, str, SlotSource]]:
    if day_rules:
        # Rules without any available entry mean the provider closed the day.
        return [
            (rule.id, _validated(rule.time_slot), SlotSource.PROVIDER_SET)
            for rule in day_rules
            if rule.available
        ]

    return [
        (f"default-{time_value}", time_value, SlotSource.DEFAULT_GENERATED)
        for time_value in generate_default_time_slots(day)
    ]


def _validated(time_value: str) -> str:
    parse_time_slot(time_value)
    return time_value


def _conflicts_with_booking(candidate_instant: datetime, blocking_instants: list[datetime]) -> bool:
    return any(
        abs(blocking_instant - candidate_instant) < BOOKING_CONFLICT_TOLERANCE
        for blocking_instant in blocking_instants
    )
