import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query

from booking_availability.core.config import get_settings
from booking_availability.schemas.availability import (
    AvailabilityRulesResponse,
    BatchAvailabilityRequest,
    BatchAvailabilityResponse,
    BookedSlotsResponse,
    RecurringAvailabilityRequest,
    SetTimeSlotAvailabilityRequest,
    SetTimeSlotAvailabilityResponse,
    TimeSlotsResponse,
)
from booking_availability.services.availability_service import AvailabilityService

router = APIRouter(prefix="/availability", tags=["availability"])
logger = logging.getLogger(__name__)


@router.get(
    "/services/{service_id}/slots",
    response_model=TimeSlotsResponse,
)
def list_time_slots(
    service_id: str,
    day: date = Query(..., alias="date", description="Calendar day in YYYY-MM-DD"),
    timezone: str | None = Query(default=None, description="IANA zone used for slot instants"),
) -> TimeSlotsResponse:
    service = AvailabilityService(get_settings())
    try:
        return service.list_time_slots(
            service_id=service_id,
            day=day,
            timezone_name=timezone,
        )
    except HTTPException as exc:
        logger.warning(
            "Time slot lookup rejected service_id=%s date=%s status_code=%s detail=%s",
            service_id,
            day.isoformat(),
            exc.status_code,
            exc.detail,
        )
        raise
    except Exception:
        logger.exception(
            "Time slot resolution failed service_id=%s date=%s",
            service_id,
            day.isoformat(),
        )
        raise


@router.get(
    "/providers/{provider_id}/rules",
    response_model=AvailabilityRulesResponse,
)
def list_availability_rules(
    provider_id: str,
    service_id: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
) -> AvailabilityRulesResponse:
    service = AvailabilityService(get_settings())
    return service.list_rules(
        provider_id=provider_id,
        service_id=service_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.put(
    "/providers/{provider_id}/rules",
    response_model=SetTimeSlotAvailabilityResponse,
)
def set_time_slot_availability(
    provider_id: str,
    payload: SetTimeSlotAvailabilityRequest,
) -> SetTimeSlotAvailabilityResponse:
    service = AvailabilityService(get_settings())
    return service.set_time_slot_availability(
        provider_id=provider_id,
        service_id=payload.service_id,
        day=payload.date,
        time_slot=payload.time_slot,
        available=payload.available,
    )


@router.post(
    "/providers/{provider_id}/rules/batch",
    response_model=BatchAvailabilityResponse,
)
def batch_update_availability(
    provider_id: str,
    payload: BatchAvailabilityRequest,
) -> BatchAvailabilityResponse:
    service = AvailabilityService(get_settings())
    return service.batch_update_availability(
        provider_id=provider_id,
        service_id=payload.service_id,
        slots=payload.slots,
    )


@router.post(
    "/providers/{provider_id}/rules/recurring",
    response_model=BatchAvailabilityResponse,
)
def apply_recurring_pattern(
    provider_id: str,
    payload: RecurringAvailabilityRequest,
) -> BatchAvailabilityResponse:
    service = AvailabilityService(get_settings())
    return service.apply_recurring_pattern(
        provider_id=provider_id,
        service_id=payload.service_id,
        days_of_week=payload.days_of_week,
        time_slots=payload.time_slots,
        start_date=payload.start_date,
        end_date=payload.end_date,
        set_available=payload.set_available,
    )


@router.get(
    "/providers/{provider_id}/booked-slots",
    response_model=BookedSlotsResponse,
)
def list_booked_slots(
    provider_id: str,
    service_id: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
) -> BookedSlotsResponse:
    service = AvailabilityService(get_settings())
    return service.list_booked_slots(
        provider_id=provider_id,
        service_id=service_id,
        start_date=start_date,
        end_date=end_date,
    )
