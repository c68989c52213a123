"""SQLAlchemy implementation of :class:`~orderhub.app.store.base.PartitionStore`."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from ..errors import PartitionScanFailure, StoreError, WriteFailure
from .base import (
    KEY_FIELD,
    Document,
    Filter,
    OrderBy,
    PartitionStore,
    resolve_server_timestamps,
)
from .models import Base, DocumentRow
from .partitions import owner_from_partition

logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine) -> None:
    """Create the ``documents`` table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _split_filters(filters: Sequence[Filter] | None) -> tuple[list[Any], list[Filter]]:
    keys: list[Any] = []
    fields: list[Filter] = []
    for field, op, value in filters or ():
        if op != "==":
            raise ValueError(f"unsupported filter operator {op!r}")
        if field == KEY_FIELD:
            keys.append(value)
        else:
            fields.append((field, op, value))
    return keys, fields


def _matches(data: Mapping[str, Any], filters: Iterable[Filter]) -> bool:
    return all(data.get(field) == value for field, _, value in filters)


def _sort_key(field: str):  # type: ignore[no-untyped-def]
    def key(doc: Document):  # type: ignore[no-untyped-def]
        value = doc.data.get(field)
        return (value is None, 0 if value is None else value)

    return key


def _order(docs: list[Document], order_by: OrderBy | None) -> list[Document]:
    if order_by is None:
        return docs
    field, direction = order_by
    try:
        return sorted(docs, key=_sort_key(field), reverse=direction == "desc")
    except TypeError:
        # mixed value types under one field; fall back to their text form
        return sorted(
            docs,
            key=lambda d: str(d.data.get(field, "")),
            reverse=direction == "desc",
        )


class SqlPartitionStore(PartitionStore):
    """Partition store over a single JSON ``documents`` table.

    ``scatter_enabled`` mirrors whether the deployment has the
    cross-partition index configured. When it is off, :meth:`scatter_query`
    raises :class:`PartitionScanFailure` just like an unindexed backend.
    """

    def __init__(self, engine: AsyncEngine, *, scatter_enabled: bool = True) -> None:
        self.engine = engine
        self.scatter_enabled = scatter_enabled
        self._sessionmaker = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    @property
    def supports_scatter(self) -> bool:
        return self.scatter_enabled

    async def get_by_key(self, partition: str, key: str) -> dict[str, Any] | None:
        try:
            async with self._sessionmaker() as session:
                row = await session.get(DocumentRow, (partition, key))
        except SQLAlchemyError as exc:
            raise StoreError(f"read {partition}/{key} failed") from exc
        if row is None:
            return None
        return dict(row.data)

    async def list_partition(
        self,
        partition: str,
        filters: Sequence[Filter] | None = None,
        order_by: OrderBy | None = None,
    ) -> list[Document]:
        keys, fields = _split_filters(filters)
        stmt = select(DocumentRow).where(DocumentRow.partition == partition)
        if keys:
            stmt = stmt.where(DocumentRow.key.in_(keys))
        rows = await self._fetch(stmt, partition)
        docs = [
            Document(row.partition, row.key, dict(row.data))
            for row in rows
            if _matches(row.data, fields)
        ]
        return _order(docs, order_by)

    async def scatter_query(
        self, filters: Sequence[Filter] | None = None
    ) -> list[Document]:
        if not self.scatter_enabled:
            raise PartitionScanFailure("cross-partition index is not configured")
        keys, fields = _split_filters(filters)
        stmt = select(DocumentRow).where(DocumentRow.owner_id.is_not(None))
        if keys:
            stmt = stmt.where(DocumentRow.key.in_(keys))
        rows = await self._fetch(stmt, "*")
        return [
            Document(row.partition, row.key, dict(row.data))
            for row in rows
            if _matches(row.data, fields)
        ]

    async def _fetch(self, stmt, label: str) -> list[DocumentRow]:  # type: ignore[no-untyped-def]
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                return list(result.scalars())
        except SQLAlchemyError as exc:
            raise StoreError(f"list {label} failed") from exc

    async def put(self, partition: str, key: str, data: Mapping[str, Any]) -> None:
        payload = resolve_server_timestamps(data, datetime.now(timezone.utc))
        try:
            async with self._sessionmaker() as session:
                await session.merge(
                    DocumentRow(
                        partition=partition,
                        key=key,
                        owner_id=owner_from_partition(partition),
                        data=payload,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise WriteFailure(f"write {partition}/{key} failed") from exc

    async def patch(self, partition: str, key: str, data: Mapping[str, Any]) -> None:
        payload = resolve_server_timestamps(data, datetime.now(timezone.utc))
        try:
            async with self._sessionmaker() as session:
                row = await session.get(DocumentRow, (partition, key))
                if row is None:
                    raise WriteFailure(f"no record at {partition}/{key}")
                # JSON columns only notice reassignment
                row.data = {**row.data, **payload}
                await session.commit()
        except SQLAlchemyError as exc:
            raise WriteFailure(f"update {partition}/{key} failed") from exc

    async def remove(self, partition: str, key: str) -> None:
        try:
            async with self._sessionmaker() as session:
                await session.execute(
                    delete(DocumentRow).where(
                        DocumentRow.partition == partition, DocumentRow.key == key
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise WriteFailure(f"delete {partition}/{key} failed") from exc


__all__ = ["SqlPartitionStore", "create_schema"]
