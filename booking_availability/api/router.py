from fastapi import APIRouter

from booking_availability.api.routes.availability import router as availability_router
from booking_availability.api.routes.bookings import router as bookings_router
from booking_availability.api.routes.health import router as health_router

api_router = APIRouter()
v1_router = APIRouter(prefix="/v1")

api_router.include_router(health_router)

# Unversioned routes used by the mobile client.
api_router.include_router(availability_router)
api_router.include_router(bookings_router)

# Versioned routes for long-term API evolution.
v1_router.include_router(availability_router)
v1_router.include_router(bookings_router)
api_router.include_router(v1_router)
