from fastapi import APIRouter

from booking_availability.core.config import get_settings
from booking_availability.schemas.health import HealthResponse
from booking_availability.services.health_service import HealthService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    settings = get_settings()
    service = HealthService(settings)
    return service.get_status()
