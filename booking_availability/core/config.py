from functools import lru_cache
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Provider Booking Availability API"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    allowed_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:8081",
        "http://127.0.0.1:3000",
    ]
    data_store: str = "supabase"
    availability_timezone: str = "UTC"
    bookings_list_limit: int = 50
    supabase_url: str = ""
    supabase_api_key: str = ""
    supabase_api_timeout_seconds: float = 10.0
    supabase_user_agent: str = "BookingAvailabilityBackend/1.0"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "booking_availability"
    mongodb_services_collection: str = "services"
    mongodb_availability_collection: str = "provider_availability"
    mongodb_bookings_collection: str = "service_bookings"
    mongodb_connect_timeout_ms: int = 2000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("data_store", mode="before")
    @classmethod
    def normalize_data_store(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("availability_timezone", mode="before")
    @classmethod
    def normalize_availability_timezone(cls, value: str) -> str:
        normalized_value = str(value or "").strip()
        if not normalized_value:
            return "UTC"
        try:
            ZoneInfo(normalized_value)
        except (ZoneInfoNotFoundError, ValueError):
            return "UTC"
        return normalized_value

    @field_validator("supabase_url", mode="before")
    @classmethod
    def normalize_supabase_url(cls, value: str) -> str:
        return str(value or "").strip().rstrip("/")

    @field_validator("supabase_api_timeout_seconds", mode="before")
    @classmethod
    def normalize_supabase_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 10.0
        return parsed_value

    @field_validator("bookings_list_limit", mode="before")
    @classmethod
    def normalize_bookings_list_limit(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 50
        return parsed_value


@lru_cache
def get_settings() -> Settings:
    return Settings()
