from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any
from uuid import uuid4

from booking_availability.core.config import Settings
from booking_availability.services.availability_models import Booking, BookingStatus
from booking_availability.services.store_errors import (
    DataStoreError,
    translate_mongo_errors,
    translate_supabase_errors,
)
from booking_availability.services.supabase_client import SupabaseRestClient, eq, gte, in_, lt, lte


class BookingStore(ABC):
    @abstractmethod
    def list_bookings_for_service(
        self,
        service_id: str,
        *,
        statuses: Sequence[BookingStatus],
    ) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_bookings_for_provider(
        self,
        provider_id: str,
        *,
        statuses: Sequence[BookingStatus],
        service_id: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_bookings_for_user(
        self,
        user_id: str,
        *,
        now: datetime,
        upcoming: bool,
        limit: int,
    ) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def create_booking(
        self,
        *,
        user_id: str,
        service_id: str,
        provider_id: str,
        scheduled_at: datetime,
    ) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def get_booking(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def update_status(self, booking_id: str, status: BookingStatus) -> Booking | None:
        raise NotImplementedError


class InMemoryBookingStore(BookingStore):
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}

    def add(self, booking: Booking) -> Booking:
        self._bookings[booking.id] = booking
        return booking

    def list_bookings_for_service(
        self,
        service_id: str,
        *,
        statuses: Sequence[BookingStatus],
    ) -> list[Booking]:
        return [
            booking
            for booking in self._bookings.values()
            if booking.service_id == service_id and booking.status in statuses
        ]

    def list_bookings_for_provider(
        self,
        provider_id: str,
        *,
        statuses: Sequence[BookingStatus],
        service_id: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> list[Booking]:
        matched = [
            booking
            for booking in self._bookings.values()
            if booking.provider_id == provider_id
            and booking.status in statuses
            and (service_id is None or booking.service_id == service_id)
            and (starts_at is None or booking.scheduled_at >= starts_at)
            and (ends_at is None or booking.scheduled_at <= ends_at)
        ]
        matched.sort(key=lambda booking: booking.scheduled_at)
        return matched

    def list_bookings_for_user(
        self,
        user_id: str,
        *,
        now: datetime,
        upcoming: bool,
        limit: int,
    ) -> list[Booking]:
        if upcoming:
            matched = [
                booking
                for booking in self._bookings.values()
                if booking.user_id == user_id and booking.scheduled_at >= now
            ]
        else:
            matched = [
                booking
                for booking in self._bookings.values()
                if booking.user_id == user_id and booking.scheduled_at < now
            ]
        matched.sort(key=lambda booking: booking.scheduled_at, reverse=not upcoming)
        return matched[:limit]

    def create_booking(
        self,
        *,
        user_id: str,
        service_id: str,
        provider_id: str,
        scheduled_at: datetime,
    ) -> Booking:
        booking = Booking(
            id=f"memory-{uuid4().hex}",
            service_id=service_id,
            scheduled_at=scheduled_at,
            status=BookingStatus.PENDING,
            provider_id=provider_id,
            user_id=user_id,
            created_at=datetime.now(UTC),
        )
        return self.add(booking)

    def get_booking(self, booking_id: str) -> Booking | None:
        return self._bookings.get(booking_id)

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking | None:
        booking = self._bookings.get(booking_id)
        if not booking:
            return None
        updated = replace(booking, status=status)
        self._bookings[booking_id] = updated
        return updated


class MongoBookingStore(BookingStore):
    def __init__(
        self,
        *,
        uri: str,
        db_name: str,
        collection_name: str,
        connect_timeout_ms: int = 2000,
    ) -> None:
        from pymongo import ASCENDING, DESCENDING, MongoClient

        self._asc = ASCENDING
        self._desc = DESCENDING
        with translate_mongo_errors("client setup"):
            self._client = MongoClient(
                uri,
                tz_aware=True,
                serverSelectionTimeoutMS=connect_timeout_ms,
                connectTimeoutMS=connect_timeout_ms,
            )
        self._collection = self._client[db_name][collection_name]
        self._indexes_ready = False

    def _ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        self._collection.create_index([("service_id", self._asc), ("status", self._asc)])
        self._collection.create_index([("provider_id", self._asc), ("scheduled_at", self._asc)])
        self._collection.create_index([("user_profile_id", self._asc), ("scheduled_at", self._desc)])
        self._indexes_ready = True

    def list_bookings_for_service(
        self,
        service_id: str,
        *,
        statuses: Sequence[BookingStatus],
    ) -> list[Booking]:
        with translate_mongo_errors("booking query"):
            self._ensure_indexes()
            records = list(
                self._collection.find(
                    {
                        "service_id": service_id,
                        "status": {"$in": [status.value for status in statuses]},
                    },
                ),
            )
        return [Booking.from_mapping(_serialize_record(record)) for record in records]

    def list_bookings_for_provider(
        self,
        provider_id: str,
        *,
        statuses: Sequence[BookingStatus],
        service_id: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> list[Booking]:
        query: dict[str, Any] = {
            "provider_id": provider_id,
            "status": {"$in": [status.value for status in statuses]},
        }
        if service_id is not None:
            query["service_id"] = service_id
        scheduled_range: dict[str, datetime] = {}
        if starts_at is not None:
            scheduled_range["$gte"] = starts_at
        if ends_at is not None:
            scheduled_range["$lte"] = ends_at
        if scheduled_range:
            query["scheduled_at"] = scheduled_range

        with translate_mongo_errors("booking query"):
            self._ensure_indexes()
            records = list(self._collection.find(query).sort("scheduled_at", self._asc))
        return [Booking.from_mapping(_serialize_record(record)) for record in records]

    def list_bookings_for_user(
        self,
        user_id: str,
        *,
        now: datetime,
        upcoming: bool,
        limit: int,
    ) -> list[Booking]:
        time_filter = {"$gte": now} if upcoming else {"$lt": now}
        with translate_mongo_errors("booking query"):
            self._ensure_indexes()
            cursor = (
                self._collection.find({"user_profile_id": user_id, "scheduled_at": time_filter})
                .sort("scheduled_at", self._asc if upcoming else self._desc)
                .limit(limit)
            )
            records = list(cursor)
        return [Booking.from_mapping(_serialize_record(record)) for record in records]

    def create_booking(
        self,
        *,
        user_id: str,
        service_id: str,
        provider_id: str,
        scheduled_at: datetime,
    ) -> Booking:
        document = {
            "user_profile_id": user_id,
            "service_id": service_id,
            "provider_id": provider_id,
            "scheduled_at": scheduled_at,
            "status": BookingStatus.PENDING.value,
            "created_at": datetime.now(UTC),
        }
        with translate_mongo_errors("booking insert"):
            self._ensure_indexes()
            insert_result = self._collection.insert_one(document)
        return Booking.from_mapping({**document, "_id": str(insert_result.inserted_id)})

    def get_booking(self, booking_id: str) -> Booking | None:
        object_id = _to_object_id(booking_id)
        if not object_id:
            return None
        with translate_mongo_errors("booking lookup"):
            self._ensure_indexes()
            record = self._collection.find_one({"_id": object_id})
        if not record:
            return None
        return Booking.from_mapping(_serialize_record(record))

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking | None:
        object_id = _to_object_id(booking_id)
        if not object_id:
            return None
        with translate_mongo_errors("booking update"):
            self._ensure_indexes()
            result = self._collection.update_one(
                {"_id": object_id},
                {"$set": {"status": status.value}},
            )
        if not result.matched_count:
            return None
        return self.get_booking(booking_id)


class SupabaseBookingStore(BookingStore):
    bookings_table = "service_bookings"
    bookings_view = "bookings_with_details"

    def __init__(self, client: SupabaseRestClient) -> None:
        self._client = client

    def list_bookings_for_service(
        self,
        service_id: str,
        *,
        statuses: Sequence[BookingStatus],
    ) -> list[Booking]:
        with translate_supabase_errors("booking query"):
            rows = self._client.select(
                self.bookings_table,
                filters=[eq("service_id", service_id), _status_filter(statuses)],
            )
        return [Booking.from_mapping(row) for row in rows]

    def list_bookings_for_provider(
        self,
        provider_id: str,
        *,
        statuses: Sequence[BookingStatus],
        service_id: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> list[Booking]:
        filters = [eq("provider_id", provider_id), _status_filter(statuses)]
        if service_id is not None:
            filters.append(eq("service_id", service_id))
        if starts_at is not None:
            filters.append(gte("scheduled_at", starts_at.isoformat()))
        if ends_at is not None:
            filters.append(lte("scheduled_at", ends_at.isoformat()))

        with translate_supabase_errors("booking query"):
            rows = self._client.select(
                self.bookings_view,
                filters=filters,
                order=("scheduled_at.asc",),
            )
        return [Booking.from_mapping(row) for row in rows]

    def list_bookings_for_user(
        self,
        user_id: str,
        *,
        now: datetime,
        upcoming: bool,
        limit: int,
    ) -> list[Booking]:
        time_filter = gte if upcoming else lt
        with translate_supabase_errors("booking query"):
            rows = self._client.select(
                self.bookings_view,
                filters=[
                    eq("user_profile_id", user_id),
                    time_filter("scheduled_at", now.isoformat()),
                ],
                order=("scheduled_at.asc" if upcoming else "scheduled_at.desc",),
                limit=limit,
            )
        return [Booking.from_mapping(row) for row in rows]

    def create_booking(
        self,
        *,
        user_id: str,
        service_id: str,
        provider_id: str,
        scheduled_at: datetime,
    ) -> Booking:
        with translate_supabase_errors("booking insert"):
            rows = self._client.insert(
                self.bookings_table,
                [
                    {
                        "user_profile_id": user_id,
                        "service_id": service_id,
                        "scheduled_at": scheduled_at.isoformat(),
                        "status": BookingStatus.PENDING.value,
                        "created_at": datetime.now(UTC).isoformat(),
                    },
                ],
            )
        if not rows:
            raise DataStoreError("Supabase booking insert returned no rows.")
        return replace(Booking.from_mapping(rows[0]), provider_id=provider_id)

    def get_booking(self, booking_id: str) -> Booking | None:
        with translate_supabase_errors("booking lookup"):
            row = self._client.get_single(self.bookings_table, filters=[eq("id", booking_id)])
        return Booking.from_mapping(row) if row else None

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking | None:
        with translate_supabase_errors("booking update"):
            rows = self._client.update(
                self.bookings_table,
                filters=[eq("id", booking_id)],
                values={"status": status.value},
            )
        return Booking.from_mapping(rows[0]) if rows else None


def _status_filter(statuses: Sequence[BookingStatus]) -> tuple[str, str]:
    return in_("status", [status.value for status in statuses])


def _to_object_id(record_id: str) -> Any | None:
    from bson import ObjectId
    from bson.errors import InvalidId

    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


def _serialize_record(record: Any) -> dict[str, Any]:
    payload = dict(record)
    payload["_id"] = str(record.get("_id", ""))
    return payload


def create_booking_store(settings: Settings) -> BookingStore:
    return _create_booking_store_cached(
        data_store=settings.data_store,
        supabase_url=settings.supabase_url,
        supabase_api_key=settings.supabase_api_key,
        supabase_api_timeout_seconds=settings.supabase_api_timeout_seconds,
        supabase_user_agent=settings.supabase_user_agent,
        mongodb_uri=settings.mongodb_uri,
        mongodb_db_name=settings.mongodb_db_name,
        mongodb_bookings_collection=settings.mongodb_bookings_collection,
        mongodb_connect_timeout_ms=settings.mongodb_connect_timeout_ms,
    )


@lru_cache
def _create_booking_store_cached(
    *,
    data_store: str,
    supabase_url: str,
    supabase_api_key: str,
    supabase_api_timeout_seconds: float,
    supabase_user_agent: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_bookings_collection: str,
    mongodb_connect_timeout_ms: int,
) -> BookingStore:
    if data_store == "memory":
        return InMemoryBookingStore()

    if data_store == "mongodb":
        return MongoBookingStore(
            uri=mongodb_uri,
            db_name=mongodb_db_name,
            collection_name=mongodb_bookings_collection,
            connect_timeout_ms=mongodb_connect_timeout_ms,
        )

    if data_store == "supabase":
        return SupabaseBookingStore(
            SupabaseRestClient(
                url=supabase_url,
                api_key=supabase_api_key,
                timeout_seconds=supabase_api_timeout_seconds,
                user_agent=supabase_user_agent,
            ),
        )

    return InMemoryBookingStore()


def clear_booking_store_cache() -> None:
    _create_booking_store_cached.cache_clear()
