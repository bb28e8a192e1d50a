import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from app.errors import PersistenceError

from .base import ReportStore, Row


def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    for key, value in (filters or {}).items():
        if row.get(key) != value:
            return False
    return True


class InMemoryStore(ReportStore):
    """Dict-backed store for local development and tests.

    Embedded selects (``companies(name)``) are not resolved; rows come back whole.
    """

    store_name: str = "memory"

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        self.tables: Dict[str, List[Row]] = {}
        for name, rows in (tables or {}).items():
            self.tables[name] = [self._with_id(r) for r in rows]
        self.objects: Dict[Tuple[str, str], Dict[str, Any]] = {}

    @staticmethod
    def _with_id(row: Mapping[str, Any]) -> Row:
        out = dict(row)
        out.setdefault("id", str(uuid.uuid4()))
        return out

    def rows(self, table: str) -> List[Row]:
        return self.tables.setdefault(table, [])

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
        out = [dict(r) for r in self.rows(table) if _matches(r, filters)]
        if order:
            present = [r for r in out if r.get(order) is not None]
            missing = [r for r in out if r.get(order) is None]
            present.sort(key=lambda r: r[order], reverse=descending)
            # nulls sort last in both directions, like PostgREST's default for desc
            out = present + missing
        if limit is not None:
            out = out[:limit]
        return out

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        stored = self._with_id(row)
        self.rows(table).append(stored)
        return dict(stored)

    async def upsert(
        self,
        table: str,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        *,
        on_conflict: Sequence[str],
        ignore_duplicates: bool = False,
    ) -> List[Row]:
        items = [rows] if isinstance(rows, Mapping) else list(rows)
        out: List[Row] = []
        for item in items:
            key = {col: item.get(col) for col in on_conflict}
            existing = next((r for r in self.rows(table) if _matches(r, key)), None)
            if existing is None:
                out.append(await self.insert(table, item))
            elif not ignore_duplicates:
                existing.update({k: v for k, v in item.items() if k != "id"})
                out.append(dict(existing))
        return out

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> List[Row]:
        out: List[Row] = []
        for row in self.rows(table):
            if _matches(row, filters):
                row.update(values)
                out.append(dict(row))
        return out

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = True,
    ) -> None:
        if not upsert and (bucket, path) in self.objects:
            raise PersistenceError(f"Object already exists: {bucket}/{path}")
        self.objects[(bucket, path)] = {"data": bytes(data), "content_type": content_type}
