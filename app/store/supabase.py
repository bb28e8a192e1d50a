from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from app.config import SupabaseSettings
from app.errors import ConfigurationError, PersistenceError

from .base import ReportStore, Row


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return "eq." + ("true" if value else "false")
    return f"eq.{value}"


def _error_message(resp: Any) -> str:
    text = getattr(resp, "text", "") or ""
    try:
        body = resp.json()
    except (ValueError, TypeError):
        return text[:512]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("msg") or text)[:512]
    return text[:512]


class SupabaseStore(ReportStore):
    """Supabase over its REST contracts: PostgREST at /rest/v1, Storage at /storage/v1.

    Uses a short-lived AsyncClient per call, authenticated with the service role key.
    """

    store_name: str = "supabase"

    def __init__(self, settings: Optional[SupabaseSettings] = None):
        settings = settings or SupabaseSettings.from_env()
        if not settings.configured:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the Supabase store")
        self._base = settings.url.rstrip("/")
        self._key = settings.key
        self._timeout = settings.timeout

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        op: str,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        content: Optional[bytes] = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                if content is not None:
                    resp = await client.request(method, url, params=params, headers=headers, content=content)
                else:
                    resp = await client.request(method, url, params=params, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise PersistenceError(f"{op} failed: {type(e).__name__}: {e}") from e
        if resp.status_code >= 400:
            raise PersistenceError(f"{op} failed ({resp.status_code}): {_error_message(resp)}")
        if not getattr(resp, "text", ""):
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceError(f"{op} returned invalid JSON: {e}") from e

    def _table_url(self, table: str) -> str:
        return f"{self._base}/rest/v1/{table}"

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        params: Dict[str, str] = {"select": columns}
        for key, value in (filters or {}).items():
            params[key] = _filter_value(value)
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        data = await self._request(f"select {table}", "GET", self._table_url(table), params=params, headers=self._headers())
        return list(data or [])

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        data = await self._request(
            f"insert {table}",
            "POST",
            self._table_url(table),
            headers=self._headers("return=representation"),
            body=dict(row),
        )
        rows = list(data or [])
        if not rows:
            raise PersistenceError(f"insert {table} returned no row")
        return rows[0]

    async def upsert(
        self,
        table: str,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        *,
        on_conflict: Sequence[str],
        ignore_duplicates: bool = False,
    ) -> List[Row]:
        body = dict(rows) if isinstance(rows, Mapping) else [dict(r) for r in rows]
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        data = await self._request(
            f"upsert {table}",
            "POST",
            self._table_url(table),
            params={"on_conflict": ",".join(on_conflict)},
            headers=self._headers(f"resolution={resolution},return=representation"),
            body=body,
        )
        return list(data or [])

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> List[Row]:
        if not filters:
            raise PersistenceError(f"update {table} refused without filters")
        params = {key: _filter_value(value) for key, value in filters.items()}
        data = await self._request(
            f"update {table}",
            "PATCH",
            self._table_url(table),
            params=params,
            headers=self._headers("return=representation"),
            body=dict(values),
        )
        return list(data or [])

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = True,
    ) -> None:
        url = f"{self._base}/storage/v1/object/{bucket}/{quote(path)}"
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        await self._request(f"upload {bucket}", "POST", url, headers=headers, content=bytes(data))
