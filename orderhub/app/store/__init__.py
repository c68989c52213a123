"""Partitioned document storage."""

from .base import (
    KEY_FIELD,
    SERVER_TIMESTAMP,
    Document,
    Filter,
    OrderBy,
    PartitionStore,
    StoredTimestamp,
)
from .partitions import (
    FLAT_PARTITION,
    OWNER_DIRECTORY,
    PartitionPath,
    owner_from_partition,
    owner_partition,
)
from .sql import SqlPartitionStore, create_schema

__all__ = [
    "Document",
    "FLAT_PARTITION",
    "Filter",
    "KEY_FIELD",
    "OWNER_DIRECTORY",
    "OrderBy",
    "PartitionPath",
    "PartitionStore",
    "SERVER_TIMESTAMP",
    "SqlPartitionStore",
    "StoredTimestamp",
    "create_schema",
    "owner_from_partition",
    "owner_partition",
]
