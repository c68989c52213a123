"""Async engine construction for the document store.

Documents are kept in a JSON column. Store timestamps are serialized as a
tagged object so they come back as
:class:`~orderhub.app.store.base.StoredTimestamp` instances rather than
plain strings::

    {"$ts": [1704067200, 0]}
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..obs import add_query_logger
from ..store.base import StoredTimestamp

TIMESTAMP_TAG = "$ts"


def _encode(value: Any) -> Any:
    if isinstance(value, StoredTimestamp):
        return {TIMESTAMP_TAG: [value.seconds, value.nanos]}
    if isinstance(value, datetime):
        return _encode(StoredTimestamp.from_datetime(value))
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and TIMESTAMP_TAG in obj:
        seconds, nanos = obj[TIMESTAMP_TAG]
        return StoredTimestamp(seconds=int(seconds), nanos=int(nanos))
    return obj


def dumps(value: Any) -> str:
    return json.dumps(value, default=_encode)


def loads(text: str) -> Any:
    return json.loads(text, object_hook=_decode)


def get_engine(url: str, *, label: str = "orders", slow_query_ms: int = 200) -> AsyncEngine:
    """Create an :class:`AsyncEngine` for ``url`` with the document codec."""
    engine = create_async_engine(url, json_serializer=dumps, json_deserializer=loads)
    add_query_logger(engine, label, slow_query_ms)
    return engine


__all__ = ["TIMESTAMP_TAG", "dumps", "get_engine", "loads"]
