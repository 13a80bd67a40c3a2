from collections.abc import Iterator
from contextlib import contextmanager

from booking_availability.services.supabase_client import SupabaseApiError


class DataStoreError(Exception):
    pass


@contextmanager
def translate_mongo_errors(operation: str) -> Iterator[None]:
    from pymongo.errors import PyMongoError

    try:
        yield
    except PyMongoError as exc:
        raise DataStoreError(f"MongoDB {operation} failed: {exc}") from exc


@contextmanager
def translate_supabase_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SupabaseApiError as exc:
        raise DataStoreError(f"Supabase {operation} failed: {exc}") from exc
