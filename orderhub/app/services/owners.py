"""Owner directory: who owns which order partition."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

from ..domain.schema import Owner
from ..store.base import PartitionStore
from ..store.partitions import OWNER_DIRECTORY

logger = logging.getLogger(__name__)

UNKNOWN_OWNER_NAME = "Unknown user"


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def owner_from_record(owner_id: str, data: Mapping[str, Any]) -> Owner:
    """Build an :class:`Owner` from a directory record."""
    email = _text(data.get("email"))
    return Owner(
        id=owner_id,
        display_name=_text(data.get("displayName"))
        or _text(data.get("name"))
        or email
        or UNKNOWN_OWNER_NAME,
        email=email,
        phone=_text(data.get("phoneNumber")) or _text(data.get("phone")),
    )


class OwnerDirectory(ABC):
    @abstractmethod
    async def list_owners(self) -> list[Owner]:
        raise NotImplementedError

    @abstractmethod
    async def get_owner(self, owner_id: str) -> Owner | None:
        raise NotImplementedError


class StoreOwnerDirectory(OwnerDirectory):
    """Owner directory read from the ``users`` collection of a store."""

    def __init__(self, store: PartitionStore) -> None:
        self.store = store

    async def list_owners(self) -> list[Owner]:
        docs = await self.store.list_partition(OWNER_DIRECTORY)
        return [owner_from_record(doc.key, doc.data) for doc in docs]

    async def get_owner(self, owner_id: str) -> Owner | None:
        data = await self.store.get_by_key(OWNER_DIRECTORY, owner_id)
        if data is None:
            logger.debug("owner %s not in directory", owner_id, extra={"owner": owner_id})
            return None
        return owner_from_record(owner_id, data)


__all__ = [
    "OwnerDirectory",
    "StoreOwnerDirectory",
    "UNKNOWN_OWNER_NAME",
    "owner_from_record",
]
