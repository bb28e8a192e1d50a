from __future__ import annotations

import abc
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

Row = Dict[str, Any]


class ReportStore(abc.ABC):
    """Row and blob access used by the report pipeline and the conversation endpoints.

    Filters are equality matches on column values. Implementations raise
    ``PersistenceError`` for any failure; callers never see transport errors.
    """

    store_name: str = "unknown"

    @abc.abstractmethod
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
        ...

    @abc.abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        ...

    @abc.abstractmethod
    async def upsert(
        self,
        table: str,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        *,
        on_conflict: Sequence[str],
        ignore_duplicates: bool = False,
    ) -> List[Row]:
        ...

    @abc.abstractmethod
    async def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> List[Row]:
        ...

    @abc.abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = True,
    ) -> None:
        ...

    async def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Row]:
        rows = await self.select(
            table, columns=columns, filters=filters, order=order, descending=descending, limit=1
        )
        return rows[0] if rows else None
