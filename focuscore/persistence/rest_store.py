"""
Hosted record store client.

Talks to the hosted relational store over its REST interface
(PostgREST conventions):

    GET    /rest/v1/<relation>?user_id=eq.<id>&order=start_time.desc&limit=10
    POST   /rest/v1/<relation>                 (Prefer: return=representation)
    PATCH  /rest/v1/<relation>?id=eq.<id>      (Prefer: return=representation)

Transport and HTTP errors are wrapped in PersistenceError.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

import httpx
import structlog

from focuscore.core.exceptions import ConfigurationError, PersistenceError
from focuscore.domain.models.session import ensure_utc
from focuscore.persistence.store import Query, Row

log = structlog.get_logger(__name__)


def _format_value(value: Any) -> str:
    """Render a filter operand in PostgREST's query-string syntax."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    return value


def build_query_params(query: Query) -> List[Tuple[str, str]]:
    """Translate a Query into PostgREST query parameters."""
    params: List[Tuple[str, str]] = [("select", "*")]
    for column, value in query.equals.items():
        op = "is" if value is None else "eq"
        params.append((column, f"{op}.{_format_value(value)}"))
    if query.range_column:
        if query.range_start is not None:
            params.append((query.range_column, f"gte.{_format_value(query.range_start)}"))
        if query.range_end is not None:
            params.append((query.range_column, f"lt.{_format_value(query.range_end)}"))
    if query.order_by:
        direction = "desc" if query.descending else "asc"
        params.append(("order", f"{query.order_by}.{direction}"))
    if query.limit is not None:
        params.append(("limit", str(int(query.limit))))
    return params


class RestRecordStore:
    """RecordStore over the hosted store's REST interface."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url or not api_key:
            raise ConfigurationError(
                "Hosted store URL and API key are required for the rest backend"
            )
        self.base_url = base_url.rstrip("/")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1", headers=headers, timeout=timeout
        )
        if client is not None:
            self._client.headers.update(headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RestRecordStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        relation: str,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        prefer_representation: bool = False,
    ) -> List[Row]:
        headers = {"Prefer": "return=representation"} if prefer_representation else None
        try:
            response = await self._client.request(
                method, f"/{relation}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(
                "store_http_error",
                method=method,
                relation=relation,
                status_code=e.response.status_code,
            )
            raise PersistenceError(
                f"{method} {relation} failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            log.error(
                "store_transport_error",
                method=method,
                relation=relation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PersistenceError(f"{method} {relation} failed: {e}") from e

        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as e:
            log.error("store_invalid_body", method=method, relation=relation, error=str(e))
            raise PersistenceError(f"{method} {relation} returned a non-JSON body") from e
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise PersistenceError(f"{method} {relation} returned an unexpected body")
        return data

    async def insert(self, relation: str, values: Row) -> Row:
        payload = {k: _to_json(v) for k, v in values.items()}
        rows = await self._request(
            "POST", relation, json=payload, prefer_representation=True
        )
        if not rows:
            raise PersistenceError(f"Insert into {relation} returned no representation")
        return rows[0]

    async def update(
        self,
        relation: str,
        row_id: str,
        values: Row,
        match: Optional[Row] = None,
    ) -> Optional[Row]:
        params = [("id", f"eq.{row_id}")]
        for column, value in (match or {}).items():
            params.append((column, f"eq.{_format_value(value)}"))
        payload = {k: _to_json(v) for k, v in values.items()}
        rows = await self._request(
            "PATCH", relation, params=params, json=payload, prefer_representation=True
        )
        return rows[0] if rows else None

    async def get(self, relation: str, row_id: str) -> Optional[Row]:
        rows = await self._request(
            "GET",
            relation,
            params=[("select", "*"), ("id", f"eq.{row_id}"), ("limit", "1")],
        )
        return rows[0] if rows else None

    async def select(self, query: Query) -> List[Row]:
        return await self._request("GET", query.relation, params=build_query_params(query))
