"""Whole-collection reads across every owner partition.

Listing all orders and counting orders by status both need every order
record, wherever it is stored. :class:`PartitionScanner` is the single place
that decides how to get them:

* **indexed** - one cross-partition scatter query per filter set, keeping
  only partitions of owners listed in the directory;
* **nested** - enumerate owners, then read each owner partition through the
  bounded fan-out, collecting results per partition before merging them.

In ``auto`` mode the scatter query is used when the store advertises it and
any scatter error or timeout falls back to nested enumeration. Forcing
``indexed`` turns a scatter error into :class:`PartitionScanFailure`.

Status filters are applied so that they agree with normalization: a record
counts as status ``X`` when :func:`~orderhub.app.domain.normalize.resolve_status`
says so, which means querying both ``status`` and the legacy ``orderStatus``
field, and scanning unfiltered for the default status because records with
no status at all normalize to it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from config import FanoutPolicy, ScanStrategy

from ..domain.normalize import resolve_status
from ..domain.order_status import DEFAULT_STATUS
from ..domain.schema import Owner
from ..errors import PartialAggregationFailure, PartitionScanFailure, StoreError
from ..routes_metrics import partition_failures_total, scatter_fallbacks_total
from ..store.base import Document, Filter, PartitionStore
from ..store.partitions import FLAT_PARTITION, owner_partition
from .fanout import fan_out
from .owners import OwnerDirectory

logger = logging.getLogger(__name__)


def status_filter_sets(status: str | None) -> list[list[Filter]]:
    """Return the store filter sets whose union covers ``status``."""
    if status is None or status == DEFAULT_STATUS:
        return [[]]
    return [[("status", "==", status)], [("orderStatus", "==", status)]]


def _merge(batches: Iterable[Sequence[Document]]) -> list[Document]:
    merged: dict[tuple[str, str], Document] = {}
    for batch in batches:
        for doc in batch:
            merged.setdefault((doc.partition, doc.key), doc)
    return list(merged.values())


def _keep_status(docs: Iterable[Document], status: str | None) -> list[Document]:
    if status is None:
        return list(docs)
    return [doc for doc in docs if resolve_status(doc.data) == status]


@dataclass
class ScanResult:
    documents: list[Document]
    strategy: ScanStrategy
    failed_partitions: dict[str, BaseException] = field(default_factory=dict)
    owners: list[Owner] | None = None

    @property
    def partial(self) -> bool:
        return bool(self.failed_partitions)

    def warnings(self) -> list[str]:
        return [
            f"partition {name} unavailable: {exc!r}"
            for name, exc in sorted(self.failed_partitions.items())
        ]


class PartitionScanner:
    def __init__(
        self,
        store: PartitionStore,
        owners: OwnerDirectory,
        *,
        strategy: ScanStrategy = ScanStrategy.AUTO,
        concurrency: int = 8,
        policy: FanoutPolicy = FanoutPolicy.BEST_EFFORT,
        include_legacy: bool = True,
    ) -> None:
        self.store = store
        self.owners = owners
        self.strategy = strategy
        self.concurrency = concurrency
        self.policy = policy
        self.include_legacy = include_legacy

    async def scan(
        self,
        status: str | None = None,
        *,
        where: Sequence[Filter] = (),
        strategy: ScanStrategy | None = None,
        timeout: float | None = None,
        operation: str = "scan",
    ) -> ScanResult:
        """Return every order document, optionally only those with ``status``.

        ``where`` holds extra equality filters applied to every store query.
        """

        strategy = strategy or self.strategy
        filter_sets = [filters + list(where) for filters in status_filter_sets(status)]

        result: ScanResult | None = None
        if strategy is ScanStrategy.INDEXED:
            result = await self._indexed(filter_sets, timeout)
        elif strategy is ScanStrategy.AUTO and self.store.supports_scatter:
            try:
                result = await self._indexed(filter_sets, timeout)
            except PartitionScanFailure as exc:
                scatter_fallbacks_total.labels(operation=operation).inc()
                logger.warning(
                    "%s: scatter query failed, falling back to nested enumeration: %s",
                    operation,
                    exc,
                    extra={"operation": operation},
                )
        if result is None:
            result = await self._nested(filter_sets, timeout, operation)

        if self.include_legacy:
            await self._add_legacy(result, filter_sets, timeout, operation)

        result.documents = _keep_status(result.documents, status)
        return result

    async def _indexed(
        self, filter_sets: list[list[Filter]], timeout: float | None
    ) -> ScanResult:
        batches = []
        for filters in filter_sets:
            try:
                batches.append(
                    await asyncio.wait_for(self.store.scatter_query(filters), timeout)
                )
            except PartitionScanFailure:
                raise
            except (StoreError, asyncio.TimeoutError) as exc:
                raise PartitionScanFailure(f"scatter query failed: {exc!r}") from exc
        owners = await self._list_owners(timeout)

        # nested enumeration only reaches listed owners; drop orphaned partitions
        listed = {owner.id for owner in owners}
        documents = []
        orphans = set()
        for doc in _merge(batches):
            if doc.owner_id in listed:
                documents.append(doc)
            else:
                orphans.add(doc.partition)
        if orphans:
            logger.info(
                "ignoring orders in partitions of unlisted owners: %s",
                ", ".join(sorted(orphans)),
            )
        return ScanResult(
            documents=documents, strategy=ScanStrategy.INDEXED, owners=owners
        )

    async def _list_owners(self, timeout: float | None) -> list[Owner]:
        try:
            return await asyncio.wait_for(self.owners.list_owners(), timeout)
        except (StoreError, asyncio.TimeoutError) as exc:
            raise PartitionScanFailure(f"owner enumeration failed: {exc!r}") from exc

    async def _nested(
        self, filter_sets: list[list[Filter]], timeout: float | None, operation: str
    ) -> ScanResult:
        owners = await self._list_owners(timeout)

        async def read_owner(owner_id: str) -> list[Document]:
            partition = owner_partition(owner_id)
            return _merge(
                [
                    await self.store.list_partition(partition, filters)
                    for filters in filter_sets
                ]
            )

        fanned = await fan_out(
            [owner.id for owner in owners],
            read_owner,
            limit=self.concurrency,
            timeout=timeout,
            policy=self.policy,
            operation=operation,
        )
        # merge in directory order so repeated scans are stable
        documents = _merge(
            fanned.values[owner.id] for owner in owners if owner.id in fanned.values
        )
        return ScanResult(
            documents=documents,
            strategy=ScanStrategy.NESTED,
            failed_partitions={
                owner_partition(owner_id): exc
                for owner_id, exc in fanned.failures.items()
            },
            owners=owners,
        )

    async def _add_legacy(
        self,
        result: ScanResult,
        filter_sets: list[list[Filter]],
        timeout: float | None,
        operation: str,
    ) -> None:
        try:
            batches = [
                await asyncio.wait_for(
                    self.store.list_partition(FLAT_PARTITION, filters), timeout
                )
                for filters in filter_sets
            ]
        except (StoreError, asyncio.TimeoutError) as exc:
            partition_failures_total.labels(operation=operation).inc()
            if self.policy is FanoutPolicy.FAIL_FAST:
                raise PartialAggregationFailure({FLAT_PARTITION: exc}) from exc
            logger.warning(
                "%s: flat order collection unavailable: %r",
                operation,
                exc,
                extra={"operation": operation, "partition": FLAT_PARTITION},
            )
            result.failed_partitions[FLAT_PARTITION] = exc
            return

        # an id stored under an owner partition hides its flat copy
        seen = {doc.key for doc in result.documents}
        result.documents.extend(doc for doc in _merge(batches) if doc.key not in seen)


__all__ = ["PartitionScanner", "ScanResult", "status_filter_sets"]
