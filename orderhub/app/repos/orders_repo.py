"""Order repository: the surface calling code uses for orders.

Every method is a coroutine returning a result envelope built by
:mod:`orderhub.app.utils.responses`. Expected misses (unknown order or owner)
come back as ``{"success": False, "error": {"code": "NOT_FOUND", ...}}``.
Store failures are raised: :class:`~orderhub.app.errors.WriteFailure` for
rejected writes, :class:`~orderhub.app.errors.PartitionScanFailure` when a
cross-partition read exhausted its fallbacks and
:class:`~orderhub.app.errors.PartialAggregationFailure` when an owner
partition failed under the ``fail_fast`` policy. Under ``best_effort`` the
envelope carries ``partial`` and ``warnings`` instead.

Orders are located through :class:`~orderhub.app.services.locator.OrderLocator`
when the caller does not know the owner, and every record read is passed
through :func:`~orderhub.app.domain.normalize.normalize` before it is handed
back.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Iterable, Mapping, TypeVar

from config import ScanStrategy, Settings, get_settings

from ..domain.normalize import normalize, resolve_status
from ..domain.order_status import DEFAULT_STATUS, OrderStatus
from ..domain.schema import Order, Owner
from ..errors import INVALID, NOT_FOUND, NormalizationError, StoreError, WriteFailure
from ..routes_metrics import order_transitions_total, orders_created_total
from ..services.aggregator import OrderAggregator
from ..services.locator import OrderLocator
from ..services.owners import OwnerDirectory, StoreOwnerDirectory
from ..services.scanner import PartitionScanner, status_filter_sets
from ..store.base import SERVER_TIMESTAMP, Document, PartitionStore
from ..store.partitions import PartitionPath, owner_partition
from ..utils.responses import err, ok

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fields callers may never overwrite after creation.
IMMUTABLE_FIELDS = ("id", "createdAt")


def _sort_newest_first(orders: Iterable[Order]) -> list[Order]:
    ordered = sorted(orders, key=lambda o: o.id)
    ordered.sort(key=lambda o: o.created_at, reverse=True)
    return ordered


def _without_immutable(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in IMMUTABLE_FIELDS}


def _invalid_owner(owner_id: str | None) -> dict[str, Any] | None:
    if owner_id is None:
        return None
    try:
        owner_partition(owner_id)
    except ValueError as exc:
        return err(INVALID, str(exc))
    return None


def _not_found(order_id: str, owner_id: str | None) -> dict[str, Any]:
    where = f" for owner {owner_id}" if owner_id else ""
    return err(NOT_FOUND, f"order {order_id} not found{where}")


class OrderRepository:
    """Create, read, update, delete, list and count orders."""

    def __init__(
        self,
        store: PartitionStore,
        owners: OwnerDirectory | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.owners = owners or StoreOwnerDirectory(store)
        self.settings = settings
        self.scanner = PartitionScanner(
            store,
            self.owners,
            strategy=settings.scan_strategy,
            concurrency=settings.fanout_concurrency,
            policy=settings.fanout_policy,
            include_legacy=settings.include_legacy_orders,
        )
        self.locator = OrderLocator(
            store,
            self.owners,
            strategy=settings.scan_strategy,
            concurrency=settings.fanout_concurrency,
            policy=settings.fanout_policy,
        )
        self.aggregator = OrderAggregator(self.scanner)

    # helpers -----------------------------------------------------------------

    def _timeout(self, timeout: float | None) -> float:
        return self.settings.store_timeout_secs if timeout is None else timeout

    async def _guard(
        self,
        awaitable: Awaitable[T],
        timeout: float | None,
        what: str,
        error: type[StoreError] = StoreError,
    ) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as exc:
            raise error(f"{what} timed out") from exc

    async def _locate(
        self, order_id: str, owner_id: str | None, timeout: float
    ) -> PartitionPath | None:
        location = await self._guard(
            self.locator.find(order_id, owner_id, timeout=timeout), None, "locate"
        )
        return location.path if location else None

    def _normalize_docs(self, docs: Iterable[Document]) -> list[Order]:
        orders = []
        for doc in docs:
            try:
                orders.append(normalize(doc.data, doc.owner_id, order_id=doc.key))
            except NormalizationError as exc:
                logger.warning(
                    "skipping malformed order %s/%s: %s",
                    doc.partition,
                    doc.key,
                    exc,
                    extra={"partition": doc.partition, "order": doc.key},
                )
        return orders

    async def _owner_map(
        self, owner_ids: set[str], known: list[Owner] | None, timeout: float
    ) -> dict[str, Owner]:
        if known is not None:
            return {owner.id: owner for owner in known}
        if len(owner_ids) == 1:
            (owner_id,) = owner_ids
            owner = await asyncio.wait_for(self.owners.get_owner(owner_id), timeout)
            return {owner_id: owner} if owner else {}
        owners = await asyncio.wait_for(self.owners.list_owners(), timeout)
        return {owner.id: owner for owner in owners}

    async def _enrich(
        self, orders: list[Order], timeout: float, known: list[Owner] | None = None
    ) -> list[str]:
        """Attach owner display data to ``orders``; return warnings."""

        owner_ids = {order.owner_id for order in orders if order.owner_id}
        if not owner_ids:
            return []
        try:
            directory = await self._owner_map(owner_ids, known, timeout)
        except (StoreError, asyncio.TimeoutError) as exc:
            logger.warning("owner enrichment failed: %r", exc, extra={"operation": "enrich"})
            return [f"owner details unavailable: {exc!r}"]

        for order in orders:
            owner = directory.get(order.owner_id)
            if owner is None:
                continue
            order.owner_name = owner.display_name
            if not order.customer_name:
                order.customer_name = owner.display_name
            if not order.customer_phone:
                order.customer_phone = owner.phone
        return []

    # create ------------------------------------------------------------------

    async def create_order(
        self,
        owner_id: str,
        data: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Store a new order under ``owner_id`` and return its generated id."""

        timeout = self._timeout(timeout)
        try:
            partition = owner_partition(owner_id)
        except ValueError as exc:
            return err(INVALID, str(exc))
        owner = await self._guard(self.owners.get_owner(owner_id), timeout, "owner lookup")
        if owner is None:
            return err(NOT_FOUND, f"owner {owner_id} not found")

        order_id = uuid.uuid4().hex
        payload = {k: v for k, v in data.items() if k not in ("id", "updatedAt")}
        payload = _without_immutable(payload)
        if not payload.get("status"):
            payload["status"] = DEFAULT_STATUS
        payload.update(id=order_id, createdAt=SERVER_TIMESTAMP, updatedAt=SERVER_TIMESTAMP)

        await self._guard(
            self.store.put(partition, order_id, payload), timeout, "create", WriteFailure
        )
        orders_created_total.inc()
        logger.info(
            "created order %s for owner %s",
            order_id,
            owner_id,
            extra={"order": order_id, "owner": owner_id, "status": payload["status"]},
        )
        return ok({"id": order_id})

    async def create_draft_order(
        self, owner_id: str, data: Mapping[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        return await self.create_order(
            owner_id, {**data, "status": OrderStatus.DRAFT.value}, timeout=timeout
        )

    # read --------------------------------------------------------------------

    async def get_order(
        self, order_id: str, *, owner_id: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        """Return the canonical order, searching every partition if needed."""

        timeout = self._timeout(timeout)
        invalid = _invalid_owner(owner_id)
        if invalid is not None:
            return invalid
        location = await self._guard(
            self.locator.find(order_id, owner_id, timeout=timeout), None, "locate"
        )
        if location is None:
            return _not_found(order_id, owner_id)
        try:
            order = normalize(location.record, location.path.owner_id, order_id=order_id)
        except NormalizationError as exc:
            return err(INVALID, str(exc))
        warnings = await self._enrich([order], timeout)
        return ok(order, warnings=warnings)

    async def list_orders_for_owner(
        self,
        owner_id: str,
        status: str | None = None,
        limit: int | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """List one owner's orders, newest first.

        ``status`` keeps only orders whose resolved status matches; ``limit``
        keeps the most recent ``limit`` orders.
        """

        timeout = self._timeout(timeout)
        try:
            partition = owner_partition(owner_id)
        except ValueError as exc:
            return err(INVALID, str(exc))

        merged: dict[str, Document] = {}
        for filters in status_filter_sets(status):
            docs = await self._guard(
                self.store.list_partition(partition, filters), timeout, "list"
            )
            for doc in docs:
                merged.setdefault(doc.key, doc)
        docs = [
            doc
            for doc in merged.values()
            if status is None or resolve_status(doc.data) == status
        ]
        orders = _sort_newest_first(self._normalize_docs(docs))
        if limit is not None:
            orders = orders[: max(limit, 0)]
        return ok(orders)

    async def list_all_orders(
        self,
        *,
        strategy: ScanStrategy | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """List every order across all partitions, newest first, with owner details."""

        timeout = self._timeout(timeout)
        scan = await self.scanner.scan(
            strategy=strategy, timeout=timeout, operation="list_all"
        )
        orders = _sort_newest_first(self._normalize_docs(scan.documents))
        warnings = scan.warnings()
        warnings += await self._enrich(orders, timeout, known=scan.owners)
        return ok(orders, partial=scan.partial, warnings=warnings)

    async def list_orders_for_restaurant(
        self,
        restaurant_id: str,
        status: str | None = None,
        limit: int | None = None,
        *,
        strategy: ScanStrategy | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """List one restaurant's orders across all partitions, newest first.

        ``limit`` keeps the most recent ``limit`` orders.
        """

        if not restaurant_id:
            return err(INVALID, "restaurant id must not be empty")
        timeout = self._timeout(timeout)
        scan = await self.scanner.scan(
            status,
            where=[("restaurantId", "==", restaurant_id)],
            strategy=strategy,
            timeout=timeout,
            operation="list_restaurant",
        )
        orders = _sort_newest_first(self._normalize_docs(scan.documents))
        if limit is not None:
            orders = orders[: max(limit, 0)]
        warnings = scan.warnings()
        warnings += await self._enrich(orders, timeout, known=scan.owners)
        return ok(orders, partial=scan.partial, warnings=warnings)

    # update / delete ---------------------------------------------------------

    async def update_order(
        self,
        order_id: str,
        patch: Mapping[str, Any],
        *,
        owner_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Merge ``patch`` into the stored order.

        ``id`` and ``createdAt`` in the patch are ignored.
        """

        timeout = self._timeout(timeout)
        invalid = _invalid_owner(owner_id)
        if invalid is not None:
            return invalid
        path = await self._locate(order_id, owner_id, timeout)
        if path is None:
            return _not_found(order_id, owner_id)
        payload = _without_immutable(patch)
        payload["updatedAt"] = SERVER_TIMESTAMP
        await self._guard(
            self.store.patch(path.partition, order_id, payload),
            timeout,
            "update",
            WriteFailure,
        )
        logger.info(
            "updated order %s",
            order_id,
            extra={"order": order_id, "partition": path.partition},
        )
        return ok({"id": order_id, "ownerId": path.owner_id})

    async def delete_order(
        self, order_id: str, *, owner_id: str | None = None, timeout: float | None = None
    ) -> dict[str, Any]:
        timeout = self._timeout(timeout)
        invalid = _invalid_owner(owner_id)
        if invalid is not None:
            return invalid
        path = await self._locate(order_id, owner_id, timeout)
        if path is None:
            return _not_found(order_id, owner_id)
        await self._guard(
            self.store.remove(path.partition, order_id), timeout, "delete", WriteFailure
        )
        logger.info(
            "deleted order %s",
            order_id,
            extra={"order": order_id, "partition": path.partition},
        )
        return ok({"id": order_id, "ownerId": path.owner_id})

    # status transitions ------------------------------------------------------

    async def transition_status(
        self,
        order_id: str,
        new_status: str,
        extra: Mapping[str, Any] | None = None,
        *,
        owner_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Write ``new_status`` plus ``extra`` fields in a single patch."""

        if not new_status:
            return err(INVALID, "status must not be empty")
        timeout = self._timeout(timeout)
        invalid = _invalid_owner(owner_id)
        if invalid is not None:
            return invalid
        path = await self._locate(order_id, owner_id, timeout)
        if path is None:
            return _not_found(order_id, owner_id)

        payload = _without_immutable(extra or {})
        payload["status"] = new_status
        payload["updatedAt"] = SERVER_TIMESTAMP
        await self._guard(
            self.store.patch(path.partition, order_id, payload),
            timeout,
            "status update",
            WriteFailure,
        )
        order_transitions_total.labels(status=new_status).inc()
        logger.info(
            "order %s -> %s",
            order_id,
            new_status,
            extra={"order": order_id, "partition": path.partition, "status": new_status},
        )
        return ok({"id": order_id, "ownerId": path.owner_id, "status": new_status})

    async def accept(self, order_id: str, **kwargs: Any) -> dict[str, Any]:
        return await self.transition_status(
            order_id,
            OrderStatus.CONFIRMED.value,
            {"acceptedAt": SERVER_TIMESTAMP},
            **kwargs,
        )

    async def start_delivery(self, order_id: str, **kwargs: Any) -> dict[str, Any]:
        return await self.transition_status(
            order_id,
            OrderStatus.ON_THE_WAY.value,
            {"startedAt": SERVER_TIMESTAMP},
            **kwargs,
        )

    async def mark_delivered(
        self,
        order_id: str,
        delivery_data: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        extra: dict[str, Any] = {"deliveredAt": SERVER_TIMESTAMP}
        if delivery_data:
            extra["deliveryData"] = dict(delivery_data)
        return await self.transition_status(
            order_id, OrderStatus.DELIVERED.value, extra, **kwargs
        )

    async def complete_order(
        self, order_id: str, payment_method: str, **kwargs: Any
    ) -> dict[str, Any]:
        """Finalize a draft: back to ``pending`` with the chosen payment method."""
        return await self.transition_status(
            order_id,
            OrderStatus.PENDING.value,
            {"paymentMethod": payment_method, "orderConfirmedAt": SERVER_TIMESTAMP},
            **kwargs,
        )

    async def update_payment(
        self,
        order_id: str,
        payment_method: str,
        status: str = OrderStatus.PENDING.value,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return await self.transition_status(
            order_id,
            status,
            {"paymentMethod": payment_method, "paymentConfirmedAt": SERVER_TIMESTAMP},
            **kwargs,
        )

    # statistics --------------------------------------------------------------

    async def get_statistics(
        self,
        status: str | None = None,
        *,
        strategy: ScanStrategy | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return ``{status: count, ..., "total": n}`` over all orders."""

        counts = await self.aggregator.count_by_status(
            status, strategy=strategy, timeout=self._timeout(timeout)
        )
        return ok(
            counts.as_dict(),
            partial=counts.partial,
            warnings=[f"partition {name} unavailable" for name in counts.failed_partitions],
        )


__all__ = ["IMMUTABLE_FIELDS", "OrderRepository"]
