"""Partition naming for owner-scoped order collections.

Orders placed through the customer app live under their owner:
``users/{owner_id}/orders``. Orders written by older flows live in the flat
``orders`` collection. The owner directory itself is the ``users``
collection.
"""

from __future__ import annotations

from dataclasses import dataclass

OWNERS_COLLECTION = "users"
ORDERS_COLLECTION = "orders"
FLAT_PARTITION = ORDERS_COLLECTION
OWNER_DIRECTORY = OWNERS_COLLECTION


def owner_partition(owner_id: str) -> str:
    """Return the partition holding ``owner_id``'s orders."""
    if not owner_id or "/" in owner_id:
        raise ValueError(f"invalid owner id {owner_id!r}")
    return f"{OWNERS_COLLECTION}/{owner_id}/{ORDERS_COLLECTION}"


def owner_from_partition(partition: str) -> str | None:
    """Return the owner id encoded in ``partition``, or ``None`` if flat."""
    parts = partition.split("/")
    if len(parts) == 3 and parts[0] == OWNERS_COLLECTION and parts[2] == ORDERS_COLLECTION:
        return parts[1] or None
    return None


@dataclass(frozen=True)
class PartitionPath:
    """Location of one order: an owner partition, or the flat collection."""

    owner_id: str | None
    order_id: str

    @property
    def partition(self) -> str:
        if self.owner_id is None:
            return FLAT_PARTITION
        return owner_partition(self.owner_id)

    @property
    def is_legacy(self) -> bool:
        return self.owner_id is None


__all__ = [
    "FLAT_PARTITION",
    "ORDERS_COLLECTION",
    "OWNERS_COLLECTION",
    "OWNER_DIRECTORY",
    "PartitionPath",
    "owner_from_partition",
    "owner_partition",
]
