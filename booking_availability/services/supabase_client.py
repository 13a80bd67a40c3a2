import json
from collections.abc import Mapping, Sequence
from typing import Any
from urllib import error, parse, request


class SupabaseApiError(Exception):
    pass


class SupabaseRestClient:
    """Minimal PostgREST client for the Supabase tables used by the booking flow."""

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        user_agent: str = "BookingAvailabilityBackend/1.0",
    ) -> None:
        self.rest_url = f"{url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    def select(
        self,
        table: str,
        *,
        filters: Sequence[tuple[str, str]] = (),
        columns: str = "*",
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query_params: list[tuple[str, str]] = [("select", columns), *filters]
        if order:
            query_params.append(("order", ",".join(order)))
        if limit is not None:
            query_params.append(("limit", str(limit)))
        return self._request_rows("GET", table, query_params)

    def get_single(
        self,
        table: str,
        *,
        filters: Sequence[tuple[str, str]],
        columns: str = "*",
    ) -> dict[str, Any] | None:
        rows = self.select(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        if not rows:
            return []
        return self._request_rows(
            "POST",
            table,
            [],
            payload=[dict(row) for row in rows],
        )

    def update(
        self,
        table: str,
        *,
        filters: Sequence[tuple[str, str]],
        values: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        return self._request_rows("PATCH", table, list(filters), payload=dict(values))

    def delete(
        self,
        table: str,
        *,
        filters: Sequence[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        return self._request_rows("DELETE", table, list(filters))

    def _request_rows(
        self,
        method: str,
        table: str,
        query_params: list[tuple[str, str]],
        payload: Any | None = None,
    ) -> list[dict[str, Any]]:
        if not self.rest_url.startswith(("http://", "https://")):
            raise SupabaseApiError("Supabase URL is not configured.")

        target = f"{self.rest_url}/{parse.quote(table, safe='')}"
        if query_params:
            target = f"{target}?{parse.urlencode(query_params, safe=',.():*')}"

        raw_payload: bytes | None = None
        if payload is not None:
            raw_payload = json.dumps(payload, default=str).encode("utf-8")

        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if method != "GET":
            headers["Prefer"] = "return=representation"

        req = request.Request(target, data=raw_payload, method=method, headers=headers)

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise SupabaseApiError(f"Supabase request to {table} timed out.") from exc
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise SupabaseApiError(
                f"Supabase API HTTP {exc.code}: {body or 'empty response body'}",
            ) from exc
        except error.URLError as exc:
            raise SupabaseApiError(f"Supabase API connection error: {exc.reason}") from exc

        if not response_body:
            return []

        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise SupabaseApiError("Supabase API returned invalid JSON.") from exc

        if isinstance(parsed_body, dict):
            return [parsed_body]
        if not isinstance(parsed_body, list):
            raise SupabaseApiError("Supabase API response is not a JSON array.")
        return [row for row in parsed_body if isinstance(row, dict)]


def eq(column: str, value: Any) -> tuple[str, str]:
    return (column, f"eq.{value}")


def gte(column: str, value: Any) -> tuple[str, str]:
    return (column, f"gte.{value}")


def lt(column: str, value: Any) -> tuple[str, str]:
    return (column, f"lt.{value}")


def lte(column: str, value: Any) -> tuple[str, str]:
    return (column, f"lte.{value}")


def in_(column: str, values: Sequence[Any]) -> tuple[str, str]:
    joined_values = ",".join(str(value) for value in values)
    return (column, f"in.({joined_values})")
