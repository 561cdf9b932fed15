"""
PostgREST record store for the hosted backend (Supabase REST API).

Maps the record store contract onto PostgREST calls:

- find    -> GET    /rest/v1/{table}?col=eq.value
- insert  -> POST   /rest/v1/{table}            (Prefer: return=representation)
- update  -> PATCH  /rest/v1/{table}?col=eq.value[&marker=is.null]
- delete  -> DELETE /rest/v1/{table}?col=eq.value

The only_if_null guard is sent as an `is.null` filter on the PATCH itself,
so Postgres evaluates it atomically with the write.

Error mapping: 409 -> DuplicateRecord, transport errors and 5xx ->
StoreUnavailable, any other non-2xx -> RecordStoreError.
"""

import time
from datetime import date, datetime
from typing import List, Optional

import httpx

from checkin_portal.logging_config import get_logger, log_with_context
from checkin_portal.store.base import DuplicateRecord, RecordStore, RecordStoreError, Row, StoreUnavailable

logger = get_logger("store")


def _filter_value(value) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return "is.{}".format(str(value).lower())
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    return "eq.{}".format(value)


def _to_json(row: Row) -> Row:
    return {
        k: v.isoformat() if isinstance(v, (datetime, date)) else v
        for k, v in row.items()
    }


class PostgrestRecordStore(RecordStore):
    name = "postgrest"

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0,
                 transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def _params(match: Row) -> dict:
        return {column: _filter_value(value) for column, value in match.items()}

    async def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        start_time = time.time()
        try:
            response = await self.client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Record store unreachable: {} {}".format(method, table),
                             context={"table": table},
                             extra_data={"error": str(e)})
            raise StoreUnavailable(str(e)) from e

        duration_ms = round((time.time() - start_time) * 1000, 2)
        if response.status_code == 409:
            raise DuplicateRecord(response.text)
        if response.status_code >= 500:
            log_with_context(logger, "ERROR", "Record store failed: {} {} -> {}".format(
                method, table, response.status_code),
                context={"table": table},
                extra_data={"duration_ms": duration_ms, "body": response.text[:500]})
            raise StoreUnavailable(f"{method} {table}: HTTP {response.status_code}")
        if response.is_error:
            raise RecordStoreError(f"{method} {table}: HTTP {response.status_code}: {response.text[:200]}")

        log_with_context(logger, "DEBUG", "{} {} -> {}".format(method, table, response.status_code),
                         context={"table": table},
                         extra_data={"duration_ms": duration_ms})
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> List[Row]:
        if not response.content:
            return []
        try:
            body = response.json()
        except ValueError as e:
            raise RecordStoreError("Record store returned invalid JSON") from e
        if isinstance(body, dict):
            return [body]
        return list(body)

    async def find(self, table: str, match: Row) -> List[Row]:
        params = {"select": "*", **self._params(match)}
        return self._rows(await self._request("GET", table, params=params))

    async def insert(self, table: str, row: Row) -> Row:
        response = await self._request("POST", table, json=_to_json(row),
                                       headers={"Prefer": "return=representation"})
        rows = self._rows(response)
        if not rows:
            raise RecordStoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, match: Row, patch: Row,
                     only_if_null: Optional[str] = None) -> List[Row]:
        params = self._params(match)
        if only_if_null:
            params[only_if_null] = "is.null"
        response = await self._request("PATCH", table, params=params, json=_to_json(patch),
                                       headers={"Prefer": "return=representation"})
        return self._rows(response)

    async def delete(self, table: str, match: Row) -> int:
        response = await self._request("DELETE", table, params=self._params(match),
                                       headers={"Prefer": "return=representation"})
        return len(self._rows(response))

    async def close(self):
        await self.client.aclose()
