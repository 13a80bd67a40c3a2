from fastapi import APIRouter, Query, status

from booking_availability.core.config import get_settings
from booking_availability.schemas.booking import BookingCreateRequest, BookingRecord, BookingsResponse
from booking_availability.services.booking_service import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingRecord,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(payload: BookingCreateRequest) -> BookingRecord:
    service = BookingService(get_settings())
    return service.create_booking(
        user_id=payload.user_id,
        service_id=payload.service_id,
        day=payload.date,
        time_slot=payload.time_slot,
    )


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingRecord,
)
def cancel_booking(booking_id: str) -> BookingRecord:
    service = BookingService(get_settings())
    return service.cancel_booking(booking_id)


@router.get("", response_model=BookingsResponse)
def list_bookings(
    user_id: str = Query(..., min_length=1),
    upcoming: bool = Query(default=True),
) -> BookingsResponse:
    service = BookingService(get_settings())
    return service.list_bookings(user_id=user_id, upcoming=upcoming)
