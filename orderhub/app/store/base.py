"""Contract for the partitioned document store the repository reads from."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Sequence, Tuple

from ..errors import PartitionScanFailure
from .partitions import owner_from_partition

# ``(field, op, value)``; only equality is supported. ``KEY_FIELD`` matches
# the document key instead of a field inside the document.
Filter = Tuple[str, str, Any]
KEY_FIELD = "__key__"

# ``(field, "asc" | "desc")``
OrderBy = Tuple[str, str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, order=True)
class StoredTimestamp:
    """Timestamp as handed back by the store (seconds + nanoseconds)."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> "StoredTimestamp":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        return cls(
            seconds=delta.days * 86400 + delta.seconds,
            nanos=delta.microseconds * 1000,
        )

    def to_datetime(self) -> datetime:
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanos // 1000)


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the store's clock when a write is applied.
SERVER_TIMESTAMP = _ServerTimestamp()


def resolve_server_timestamps(data: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    """Return a copy of ``data`` with every :data:`SERVER_TIMESTAMP` replaced."""
    stamp = StoredTimestamp.from_datetime(now)
    resolved: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = stamp
        elif isinstance(value, Mapping):
            resolved[key] = resolve_server_timestamps(value, now)
        else:
            resolved[key] = value
    return resolved


@dataclass(frozen=True)
class Document:
    """A raw record together with its storage location."""

    partition: str
    key: str
    data: dict[str, Any]

    @property
    def owner_id(self) -> str | None:
        return owner_from_partition(self.partition)


class PartitionStore(ABC):
    """Contract for partitioned document persistence."""

    @property
    def supports_scatter(self) -> bool:
        """Whether :meth:`scatter_query` is backed by a cross-partition index."""
        return False

    @abstractmethod
    async def get_by_key(self, partition: str, key: str) -> dict[str, Any] | None:
        """Return the record stored at ``partition``/``key`` or ``None``."""
        raise NotImplementedError

    @abstractmethod
    async def list_partition(
        self,
        partition: str,
        filters: Sequence[Filter] | None = None,
        order_by: OrderBy | None = None,
    ) -> list[Document]:
        """List the records of one partition matching ``filters``."""
        raise NotImplementedError

    async def scatter_query(
        self, filters: Sequence[Filter] | None = None
    ) -> list[Document]:
        """Query every owner order partition at once.

        Stores without a cross-partition index raise
        :class:`~orderhub.app.errors.PartitionScanFailure`.
        """
        raise PartitionScanFailure("scatter query not supported by this store")

    @abstractmethod
    async def put(self, partition: str, key: str, data: Mapping[str, Any]) -> None:
        """Create or replace the record at ``partition``/``key``."""
        raise NotImplementedError

    @abstractmethod
    async def patch(self, partition: str, key: str, data: Mapping[str, Any]) -> None:
        """Merge top-level ``data`` fields into an existing record."""
        raise NotImplementedError

    @abstractmethod
    async def remove(self, partition: str, key: str) -> None:
        """Delete the record at ``partition``/``key`` if present."""
        raise NotImplementedError


__all__ = [
    "Document",
    "Filter",
    "KEY_FIELD",
    "OrderBy",
    "PartitionStore",
    "SERVER_TIMESTAMP",
    "StoredTimestamp",
    "resolve_server_timestamps",
]
