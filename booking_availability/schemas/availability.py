from datetime import date

from pydantic import BaseModel, Field, field_validator

from booking_availability.services.availability_models import (
    InvalidTimeSlotError,
    SlotSource,
    normalize_time_slot,
)


def _validate_time_slot(value: str) -> str:
    try:
        return normalize_time_slot(value)
    except InvalidTimeSlotError as exc:
        raise ValueError(str(exc)) from exc


class TimeSlotItem(BaseModel):
    id: str
    time_value: str
    display_time: str
    is_available: bool = True
    source: SlotSource


class TimeSlotsResponse(BaseModel):
    service_id: str
    provider_id: str
    date: date
    timezone: str
    items: list[TimeSlotItem] = Field(default_factory=list)


class AvailabilityRuleItem(BaseModel):
    id: str
    provider_id: str
    service_id: str
    date: date
    time_slot: str
    available: bool


class AvailabilityRulesResponse(BaseModel):
    items: list[AvailabilityRuleItem] = Field(default_factory=list)


class TimeSlotAvailabilityUpdate(BaseModel):
    date: date
    time_slot: str
    available: bool

    @field_validator("time_slot", mode="before")
    @classmethod
    def normalize_time_slot(cls, value: str) -> str:
        return _validate_time_slot(value)


class SetTimeSlotAvailabilityRequest(TimeSlotAvailabilityUpdate):
    service_id: str


class SetTimeSlotAvailabilityResponse(BaseModel):
    operation: str
    rule: AvailabilityRuleItem | None = None


class BatchAvailabilityRequest(BaseModel):
    service_id: str
    slots: list[TimeSlotAvailabilityUpdate] = Field(default_factory=list)


class BatchAvailabilityResponse(BaseModel):
    inserted: int = 0
    deleted: int = 0


class RecurringAvailabilityRequest(BaseModel):
    service_id: str
    days_of_week: list[int] = Field(
        ...,
        min_length=1,
        description="0=Sunday, 1=Monday, ..., 6=Saturday",
    )
    time_slots: list[str] = Field(..., min_length=1)
    start_date: date
    end_date: date
    set_available: bool = True

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value: list[int]) -> list[int]:
        for day_of_week in value:
            if day_of_week < 0 or day_of_week > 6:
                raise ValueError("days_of_week values must be between 0 (Sunday) and 6 (Saturday).")
        return sorted(set(value))

    @field_validator("time_slots", mode="before")
    @classmethod
    def normalize_time_slots(cls, value: list[str]) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("time_slots must be a list.")
        return [_validate_time_slot(time_slot) for time_slot in value]


class BookedSlotItem(BaseModel):
    id: str
    service_id: str
    date: date
    time_value: str
    status: str


class BookedSlotsResponse(BaseModel):
    items: list[BookedSlotItem] = Field(default_factory=list)
