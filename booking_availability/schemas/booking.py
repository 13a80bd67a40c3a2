from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from booking_availability.services.availability_models import (
    BookingStatus,
    InvalidTimeSlotError,
    normalize_time_slot,
)


class BookingCreateRequest(BaseModel):
    user_id: str
    service_id: str
    date: date
    time_slot: str

    @field_validator("time_slot", mode="before")
    @classmethod
    def normalize_time_slot(cls, value: str) -> str:
        try:
            return normalize_time_slot(value)
        except InvalidTimeSlotError as exc:
            raise ValueError(str(exc)) from exc


class BookingRecord(BaseModel):
    id: str
    service_id: str
    provider_id: str | None = None
    user_id: str | None = None
    scheduled_at: datetime
    status: BookingStatus
    created_at: datetime | None = None


class BookingsResponse(BaseModel):
    items: list[BookingRecord] = Field(default_factory=list)
