from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from functools import lru_cache
from typing import Any
from uuid import uuid4

from booking_availability.core.config import Settings
from booking_availability.services.availability_models import AvailabilityRule
from booking_availability.services.store_errors import (
    DataStoreError,
    translate_mongo_errors,
    translate_supabase_errors,
)
from booking_availability.services.supabase_client import SupabaseRestClient, eq, gte, lte


class AvailabilityStore(ABC):
    @abstractmethod
    def get_service_provider_id(self, service_id: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def register_service(self, service_id: str, provider_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_rules(
        self,
        provider_id: str,
        *,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AvailabilityRule]:
        raise NotImplementedError

    @abstractmethod
    def find_rule(
        self,
        *,
        provider_id: str,
        service_id: str,
        day: date,
        time_slot: str,
    ) -> AvailabilityRule | None:
        raise NotImplementedError

    @abstractmethod
    def insert_rules(self, rules: Sequence[AvailabilityRule]) -> list[AvailabilityRule]:
        raise NotImplementedError

    @abstractmethod
    def delete_rule(self, rule_id: str) -> bool:
        raise NotImplementedError


class InMemoryAvailabilityStore(AvailabilityStore):
    def __init__(self) -> None:
        self._service_providers: dict[str, str] = {}
        self._rules: dict[str, AvailabilityRule] = {}

    def get_service_provider_id(self, service_id: str) -> str | None:
        return self._service_providers.get(service_id)

    def register_service(self, service_id: str, provider_id: str) -> None:
        self._service_providers[service_id] = provider_id

    def list_rules(
        self,
        provider_id: str,
        *,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AvailabilityRule]:
        matched = [
            rule
            for rule in self._rules.values()
            if rule.provider_id == provider_id
            and (service_id is None or rule.service_id == service_id)
            and (start_date is None or rule.date >= start_date)
            and (end_date is None or rule.date <= end_date)
        ]
        matched.sort(key=lambda rule: (rule.date, rule.time_slot))
        return matched

    def find_rule(
        self,
        *,
        provider_id: str,
        service_id: str,
        day: date,
        time_slot: str,
    ) -> AvailabilityRule | None:
        for rule in self._rules.values():
            if (
                rule.provider_id == provider_id
                and rule.service_id == service_id
                and rule.date == day
                and rule.time_slot == time_slot
            ):
                return rule
        return None

    def insert_rules(self, rules: Sequence[AvailabilityRule]) -> list[AvailabilityRule]:
        inserted: list[AvailabilityRule] = []
        for rule in rules:
            stored_rule = AvailabilityRule(
                id=rule.id or f"memory-{uuid4().hex}",
                provider_id=rule.provider_id,
                service_id=rule.service_id,
                date=rule.date,
                time_slot=rule.time_slot,
                available=rule.available,
            )
            self._rules[stored_rule.id] = stored_rule
            inserted.append(stored_rule)
        return inserted

    def delete_rule(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None


class MongoAvailabilityStore(AvailabilityStore):
    def __init__(
        self,
        *,
        uri: str,
        db_name: str,
        services_collection_name: str,
        availability_collection_name: str,
        connect_timeout_ms: int = 2000,
    ) -> None:
        from pymongo import MongoClient

        with translate_mongo_errors("client setup"):
            self._client = MongoClient(
                uri,
                serverSelectionTimeoutMS=connect_timeout_ms,
                connectTimeoutMS=connect_timeout_ms,
            )
        database = self._client[db_name]
        self._services = database[services_collection_name]
        self._rules = database[availability_collection_name]
        self._indexes_ready = False

    def _ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        self._services.create_index("service_id", unique=True)
        self._rules.create_index(
            [("provider_id", 1), ("service_id", 1), ("date", 1), ("time_slot", 1)],
            unique=True,
        )
        self._indexes_ready = True

    def get_service_provider_id(self, service_id: str) -> str | None:
        with translate_mongo_errors("service lookup"):
            self._ensure_indexes()
            record = self._services.find_one({"service_id": service_id})
        if not record:
            return None
        provider_id = record.get("provider_id")
        return str(provider_id) if provider_id else None

    def register_service(self, service_id: str, provider_id: str) -> None:
        with translate_mongo_errors("service registration"):
            self._ensure_indexes()
            self._services.update_one(
                {"service_id": service_id},
                {"$set": {"provider_id": provider_id}},
                upsert=True,
            )

    def list_rules(
        self,
        provider_id: str,
        *,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AvailabilityRule]:
        query: dict[str, Any] = {"provider_id": provider_id}
        if service_id is not None:
            query["service_id"] = service_id
        date_range: dict[str, str] = {}
        if start_date is not None:
            date_range["$gte"] = start_date.isoformat()
        if end_date is not None:
            date_range["$lte"] = end_date.isoformat()
        if date_range:
            query["date"] = date_range

        with translate_mongo_errors("availability query"):
            self._ensure_indexes()
            cursor = self._rules.find(query).sort([("date", 1), ("time_slot", 1)])
            records = list(cursor)
        return [AvailabilityRule.from_mapping(_serialize_record(record)) for record in records]

    def find_rule(
        self,
        *,
        provider_id: str,
        service_id: str,
        day: date,
        time_slot: str,
    ) -> AvailabilityRule | None:
        with translate_mongo_errors("availability lookup"):
            self._ensure_indexes()
            record = self._rules.find_one(
                {
                    "provider_id": provider_id,
                    "service_id": service_id,
                    "date": day.isoformat(),
                    "time_slot": time_slot,
                },
            )
        if not record:
            return None
        return AvailabilityRule.from_mapping(_serialize_record(record))

    def insert_rules(self, rules: Sequence[AvailabilityRule]) -> list[AvailabilityRule]:
        if not rules:
            return []
        documents = [
            {
                "provider_id": rule.provider_id,
                "service_id": rule.service_id,
                "date": rule.date.isoformat(),
                "time_slot": rule.time_slot,
                "available": rule.available,
            }
            for rule in rules
        ]
        with translate_mongo_errors("availability insert"):
            self._ensure_indexes()
            insert_result = self._rules.insert_many(documents)
        return [
            AvailabilityRule.from_mapping({**document, "_id": str(inserted_id)})
            for document, inserted_id in zip(documents, insert_result.inserted_ids)
        ]

    def delete_rule(self, rule_id: str) -> bool:
        object_id = _to_object_id(rule_id)
        if not object_id:
            return False
        with translate_mongo_errors("availability delete"):
            self._ensure_indexes()
            result = self._rules.delete_one({"_id": object_id})
        return bool(result.deleted_count)


class SupabaseAvailabilityStore(AvailabilityStore):
    services_table = "services"
    availability_table = "provider_availability"

    def __init__(self, client: SupabaseRestClient) -> None:
        self._client = client

    def get_service_provider_id(self, service_id: str) -> str | None:
        with translate_supabase_errors("service lookup"):
            record = self._client.get_single(
                self.services_table,
                filters=[eq("id", service_id)],
                columns="provider_id",
            )
        if not record or not record.get("provider_id"):
            return None
        return str(record["provider_id"])

    def register_service(self, service_id: str, provider_id: str) -> None:
        raise DataStoreError("Services are managed by the Supabase project, not by this API.")

    def list_rules(
        self,
        provider_id: str,
        *,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AvailabilityRule]:
        filters = [eq("provider_id", provider_id)]
        if service_id is not None:
            filters.append(eq("service_id", service_id))
        if start_date is not None:
            filters.append(gte("date", start_date.isoformat()))
        if end_date is not None:
            filters.append(lte("date", end_date.isoformat()))

        with translate_supabase_errors("availability query"):
            rows = self._client.select(
                self.availability_table,
                filters=filters,
                order=("date.asc", "time_slot.asc"),
            )
        return [AvailabilityRule.from_mapping(row) for row in rows]

    def find_rule(
        self,
        *,
        provider_id: str,
        service_id: str,
        day: date,
        time_slot: str,
    ) -> AvailabilityRule | None:
        with translate_supabase_errors("availability lookup"):
            row = self._client.get_single(
                self.availability_table,
                filters=[
                    eq("provider_id", provider_id),
                    eq("service_id", service_id),
                    eq("date", day.isoformat()),
                    eq("time_slot", time_slot),
                ],
            )
        return AvailabilityRule.from_mapping(row) if row else None

    def insert_rules(self, rules: Sequence[AvailabilityRule]) -> list[AvailabilityRule]:
        payload = [
            {
                "provider_id": rule.provider_id,
                "service_id": rule.service_id,
                "date": rule.date.isoformat(),
                "time_slot": rule.time_slot,
                "available": rule.available,
            }
            for rule in rules
        ]
        with translate_supabase_errors("availability insert"):
            rows = self._client.insert(self.availability_table, payload)
        return [AvailabilityRule.from_mapping(row) for row in rows]

    def delete_rule(self, rule_id: str) -> bool:
        with translate_supabase_errors("availability delete"):
            rows = self._client.delete(self.availability_table, filters=[eq("id", rule_id)])
        return bool(rows)


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


def create_availability_store(settings: Settings) -> AvailabilityStore:
    return _create_availability_store_cached(
        data_store=settings.data_store,
        supabase_url=settings.supabase_url,
        supabase_api_key=settings.supabase_api_key,
        supabase_api_timeout_seconds=settings.supabase_api_timeout_seconds,
        supabase_user_agent=settings.supabase_user_agent,
        mongodb_uri=settings.mongodb_uri,
        mongodb_db_name=settings.mongodb_db_name,
        mongodb_services_collection=settings.mongodb_services_collection,
        mongodb_availability_collection=settings.mongodb_availability_collection,
        mongodb_connect_timeout_ms=settings.mongodb_connect_timeout_ms,
    )


@lru_cache
def _create_availability_store_cached(
    *,
    data_store: str,
    supabase_url: str,
    supabase_api_key: str,
    supabase_api_timeout_seconds: float,
    supabase_user_agent: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_services_collection: str,
    mongodb_availability_collection: str,
    mongodb_connect_timeout_ms: int,
) -> AvailabilityStore:
    if data_store == "memory":
        return InMemoryAvailabilityStore()

    if data_store == "mongodb":
        return MongoAvailabilityStore(
            uri=mongodb_uri,
            db_name=mongodb_db_name,
            services_collection_name=mongodb_services_collection,
            availability_collection_name=mongodb_availability_collection,
            connect_timeout_ms=mongodb_connect_timeout_ms,
        )

    if data_store == "supabase":
        return SupabaseAvailabilityStore(
            SupabaseRestClient(
                url=supabase_url,
                api_key=supabase_api_key,
                timeout_seconds=supabase_api_timeout_seconds,
                user_agent=supabase_user_agent,
            ),
        )

    return InMemoryAvailabilityStore()


def clear_availability_store_cache() -> None:
    _create_availability_store_cached.cache_clear()
