from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from enum import Enum
import re
from typing import Any

_TIME_SLOT_PATTERN = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
_SHORT_TIME_SLOT_PATTERN = re.compile(r"^\d{2}:\d{2}$")


class InvalidTimeSlotError(ValueError):
    pass


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class SlotSource(str, Enum):
    PROVIDER_SET = "provider_set"
    DEFAULT_GENERATED = "default_generated"


@dataclass(frozen=True)
class AvailabilityRule:
    id: str
    provider_id: str
    service_id: str
    date: date
    time_slot: str
    available: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "date": self.date.isoformat(),
            "time_slot": self.time_slot,
            "available": self.available,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> AvailabilityRule:
        return cls(
            id=str(payload.get("id") or payload.get("_id") or ""),
            provider_id=str(payload.get("provider_id", "")),
            service_id=str(payload.get("service_id", "")),
            date=parse_calendar_date(payload.get("date")),
            time_slot=str(payload.get("time_slot", "")),
            available=bool(payload.get("available", False)),
        )


@dataclass(frozen=True)
class Booking:
    id: str
    service_id: str
    scheduled_at: datetime
    status: BookingStatus
    provider_id: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "provider_id": self.provider_id,
            "user_profile_id": self.user_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> Booking:
        provider_id = payload.get("provider_id")
        user_id = payload.get("user_profile_id")
        created_at = payload.get("created_at")
        return cls(
            id=str(payload.get("id") or payload.get("_id") or ""),
            service_id=str(payload.get("service_id", "")),
            scheduled_at=parse_instant(payload.get("scheduled_at")),
            status=BookingStatus(str(payload.get("status", "pending")).strip().lower()),
            provider_id=str(provider_id) if provider_id is not None else None,
            user_id=str(user_id) if user_id is not None else None,
            created_at=parse_instant(created_at) if created_at else None,
        )


@dataclass(frozen=True)
class TimeSlot:
    id: str
    time_value: str
    display_time: str
    is_available: bool
    source: SlotSource


def parse_time_slot(value: str) -> time:
    if not isinstance(value, str):
        raise InvalidTimeSlotError(f"Time slot must be a string in HH:MM:SS format, got {value!r}.")
    match = _TIME_SLOT_PATTERN.match(value)
    if not match:
        raise InvalidTimeSlotError(f"Time slot {value!r} is not in HH:MM:SS format.")
    hours, minutes, seconds = (int(group) for group in match.groups())
    if hours > 23 or minutes > 59 or seconds > 59:
        raise InvalidTimeSlotError(f"Time slot {value!r} is out of range.")
    return time(hours, minutes, seconds)


def normalize_time_slot(value: str) -> str:
    """Accepts HH:MM or HH:MM:SS and returns the validated HH:MM:SS form."""
    candidate = str(value or "").strip()
    if _SHORT_TIME_SLOT_PATTERN.match(candidate):
        candidate = f"{candidate}:00"
    parse_time_slot(candidate)
    return candidate


def parse_calendar_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise InvalidTimeSlotError(f"Invalid calendar date {value!r}.") from exc
    raise InvalidTimeSlotError("A calendar date is required.")


def parse_instant(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        normalized_value = value.strip()
        if normalized_value.endswith("Z"):
            normalized_value = f"{normalized_value[:-1]}+00:00"
        return datetime.fromisoformat(normalized_value)
    raise ValueError(f"Invalid timestamp {value!r}.")


def localize(instant: datetime, tz: tzinfo) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant


def slot_instant(day: date, time_slot: str, tz: tzinfo) -> datetime:
    return datetime.combine(day, parse_time_slot(time_slot), tzinfo=tz)
