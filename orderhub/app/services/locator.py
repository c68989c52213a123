"""Resolve an order id to the partition that stores it.

Lookup is tiered, cheapest first:

1. direct read in the caller-supplied owner partition;
2. cross-partition search: the scatter query when the store has one, else
   (or when it fails) nested enumeration probing each owner partition through
   the bounded fan-out and stopping at the first hit;
3. direct read in the flat legacy collection;
4. not found.

Both tier-2 strategies must resolve the same location for an order stored in
exactly one owner partition, so both only consider partitions of owners
listed in the directory. An order present in an owner partition and in the
flat collection resolves to the owner partition. When nested enumeration
could not read some owner partitions and found nothing in the others, the
lookup raises :class:`PartitionScanFailure` rather than answering from the
flat collection or reporting a miss.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from config import FanoutPolicy, ScanStrategy

from ..errors import PartitionScanFailure, StoreError
from ..routes_metrics import scatter_fallbacks_total
from ..store.base import KEY_FIELD, PartitionStore
from ..store.partitions import FLAT_PARTITION, PartitionPath, owner_partition
from .fanout import first_hit
from .owners import OwnerDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    path: PartitionPath
    record: dict[str, Any]


class OrderLocator:
    def __init__(
        self,
        store: PartitionStore,
        owners: OwnerDirectory,
        *,
        strategy: ScanStrategy = ScanStrategy.AUTO,
        concurrency: int = 8,
        policy: FanoutPolicy = FanoutPolicy.BEST_EFFORT,
    ) -> None:
        self.store = store
        self.owners = owners
        self.strategy = strategy
        self.concurrency = concurrency
        self.policy = policy

    async def locate(
        self, order_id: str, owner_id: str | None = None, *, timeout: float | None = None
    ) -> PartitionPath | None:
        """Return where ``order_id`` is stored, or ``None``."""
        location = await self.find(order_id, owner_id, timeout=timeout)
        return location.path if location else None

    async def find(
        self, order_id: str, owner_id: str | None = None, *, timeout: float | None = None
    ) -> Location | None:
        """Like :meth:`locate` but also return the raw record that was read."""

        if owner_id:
            record = await asyncio.wait_for(
                self.store.get_by_key(owner_partition(owner_id), order_id), timeout
            )
            if record is not None:
                return Location(PartitionPath(owner_id, order_id), record)
            logger.debug(
                "order %s not under owner %s, searching all partitions",
                order_id,
                owner_id,
                extra={"order": order_id, "owner": owner_id},
            )

        location = await self._search_partitions(order_id, owner_id, timeout)
        if location is not None:
            return location

        record = await asyncio.wait_for(
            self.store.get_by_key(FLAT_PARTITION, order_id), timeout
        )
        if record is not None:
            return Location(PartitionPath(None, order_id), record)
        return None

    async def _search_partitions(
        self, order_id: str, skip_owner: str | None, timeout: float | None
    ) -> Location | None:
        use_scatter = self.strategy is ScanStrategy.INDEXED or (
            self.strategy is ScanStrategy.AUTO and self.store.supports_scatter
        )
        if use_scatter:
            try:
                return await self._scatter(order_id, timeout)
            except (StoreError, asyncio.TimeoutError) as exc:
                if self.strategy is ScanStrategy.INDEXED:
                    if isinstance(exc, PartitionScanFailure):
                        raise
                    raise PartitionScanFailure(f"scatter lookup failed: {exc!r}") from exc
                scatter_fallbacks_total.labels(operation="locate").inc()
                logger.warning(
                    "scatter lookup for %s failed, probing owner partitions: %r",
                    order_id,
                    exc,
                    extra={"order": order_id, "operation": "locate"},
                )
        return await self._nested(order_id, skip_owner, timeout)

    async def _scatter(self, order_id: str, timeout: float | None) -> Location | None:
        docs = await asyncio.wait_for(
            self.store.scatter_query([(KEY_FIELD, "==", order_id)]), timeout
        )
        if len(docs) > 1:
            logger.warning(
                "order %s stored in %d partitions",
                order_id,
                len(docs),
                extra={"order": order_id},
            )
        # only partitions of listed owners count, as with nested enumeration
        for doc in sorted(docs, key=lambda d: d.partition):
            owner = await asyncio.wait_for(self.owners.get_owner(doc.owner_id), timeout)
            if owner is not None:
                return Location(PartitionPath(doc.owner_id, order_id), doc.data)
            logger.info(
                "ignoring order %s in partition of unlisted owner %s",
                order_id,
                doc.owner_id,
                extra={"order": order_id, "partition": doc.partition},
            )
        return None

    async def _nested(
        self, order_id: str, skip_owner: str | None, timeout: float | None
    ) -> Location | None:
        try:
            owners = await asyncio.wait_for(self.owners.list_owners(), timeout)
        except (StoreError, asyncio.TimeoutError) as exc:
            raise PartitionScanFailure(f"owner enumeration failed: {exc!r}") from exc

        async def probe(owner_id: str) -> dict[str, Any] | None:
            return await self.store.get_by_key(owner_partition(owner_id), order_id)

        hit = await first_hit(
            sorted(owner.id for owner in owners if owner.id != skip_owner),
            probe,
            limit=self.concurrency,
            timeout=timeout,
            policy=self.policy,
            operation="locate",
        )
        if hit.found:
            return Location(PartitionPath(hit.key, order_id), hit.value)
        if hit.failures:
            # the order may sit in an unreadable partition; a flat copy would be stale
            failed = ", ".join(sorted(owner_partition(key) for key in hit.failures))
            raise PartitionScanFailure(
                f"order {order_id} not found; unreadable partitions: {failed}"
            )
        return None


__all__ = ["Location", "OrderLocator"]
