from datetime import datetime, timezone

import pytest
from prometheus_client import REGISTRY

from config import FanoutPolicy, ScanStrategy
from orderhub.app.errors import (
    PartialAggregationFailure,
    PartitionScanFailure,
    WriteFailure,
)
from orderhub.app.repos import OrderRepository
from orderhub.app.store import StoredTimestamp, owner_partition
from orderhub.tests._stores import (
    FlakyStore,
    seed_example,
    seed_flat_order,
    seed_order,
    seed_owner,
)


def _repo(store, settings, **overrides):
    return OrderRepository(store, settings=settings.model_copy(update=overrides))


def _ids(envelope):
    return [order.id for order in envelope["data"]]


@pytest.mark.anyio
async def test_create_order_sets_defaults(store, settings):
    await seed_owner(store, "A")
    before = REGISTRY.get_sample_value("orders_created_total") or 0

    result = await _repo(store, settings).create_order(
        "A", {"customerName": "Salma", "createdAt": "1999-01-01", "total": 20}
    )

    assert result["success"] is True
    order_id = result["data"]["id"]
    record = await store.get_by_key(owner_partition("A"), order_id)
    assert record["id"] == order_id
    assert record["status"] == "pending"
    assert isinstance(record["createdAt"], StoredTimestamp)
    assert record["createdAt"] == record["updatedAt"]
    assert record["createdAt"].to_datetime().year > 1999
    assert REGISTRY.get_sample_value("orders_created_total") == before + 1


@pytest.mark.anyio
async def test_create_order_keeps_supplied_status(store, settings):
    await seed_owner(store, "A")

    result = await _repo(store, settings).create_order("A", {"status": "dine-in"})

    record = await store.get_by_key(owner_partition("A"), result["data"]["id"])
    assert record["status"] == "dine-in"


@pytest.mark.anyio
async def test_create_order_for_unknown_owner(store, settings):
    result = await _repo(store, settings).create_order("ghost", {})

    assert result == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "owner ghost not found"},
    }


@pytest.mark.anyio
async def test_create_order_rejects_bad_owner_id(store, settings):
    result = await _repo(store, settings).create_order("a/b", {})
    assert result["error"]["code"] == "INVALID"


@pytest.mark.anyio
async def test_create_draft_order_forces_draft(store, settings):
    await seed_owner(store, "A")

    result = await _repo(store, settings).create_draft_order("A", {"status": "pending"})

    record = await store.get_by_key(owner_partition("A"), result["data"]["id"])
    assert record["status"] == "draft"


@pytest.mark.anyio
async def test_create_order_write_failure_propagates(store, settings):
    await seed_owner(store, "A")

    with pytest.raises(WriteFailure):
        await _repo(FlakyStore(store, fail_writes=True), settings).create_order("A", {})


@pytest.mark.anyio
async def test_get_order_without_owner_matches_direct_read(store, settings):
    await seed_example(store)
    repo = _repo(store, settings)

    located = await repo.get_order("3")
    direct = await repo.get_order("3", owner_id="B")

    assert located["success"] and direct["success"]
    assert located["data"] == direct["data"]
    assert located["data"].owner_id == "B"
    assert located["data"].status == "pending"


@pytest.mark.anyio
async def test_get_order_enriches_with_owner(store, settings):
    await seed_example(store)

    order = (await _repo(store, settings).get_order("1"))["data"]

    assert order.owner_name == "Amina"
    assert order.customer_name == "Amina"
    assert order.customer_phone == "+212600000001"


@pytest.mark.anyio
async def test_get_order_keeps_customer_details(store, settings):
    await seed_example(store)
    await seed_order(store, "A", "7", customerName="Salma", phoneNumber="0611111111")

    order = (await _repo(store, settings).get_order("7", owner_id="A"))["data"]

    assert order.owner_name == "Amina"
    assert order.customer_name == "Salma"
    assert order.customer_phone == "0611111111"


@pytest.mark.anyio
async def test_get_order_survives_directory_failure(store, settings):
    await seed_example(store)
    flaky = FlakyStore(store, fail_partitions=["users"])

    result = await _repo(flaky, settings).get_order("1", owner_id="A")

    assert result["success"] is True
    assert result["data"].owner_name is None
    assert result["warnings"]


@pytest.mark.anyio
async def test_get_order_not_found(store, settings):
    await seed_example(store)

    result = await _repo(store, settings).get_order("nope")

    assert result["success"] is False
    assert result["error"]["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_get_legacy_order(store, settings):
    await seed_example(store)
    await seed_flat_order(store, "legacy-1", userId="B", status="delivered")

    order = (await _repo(store, settings).get_order("legacy-1"))["data"]

    assert order.owner_id == "B"
    assert order.owner_name == "Brahim"


@pytest.mark.anyio
async def test_list_orders_for_owner_newest_first(store, settings):
    await seed_example(store)

    result = await _repo(store, settings).list_orders_for_owner("B")

    assert _ids(result) == ["3", "2"]


@pytest.mark.anyio
async def test_list_orders_for_owner_status_and_limit(store, settings):
    await seed_example(store)
    await seed_order(store, "B", "4", orderStatus="delivered", createdAt="2024-01-04T00:00:00Z")
    repo = _repo(store, settings)

    delivered = await repo.list_orders_for_owner("B", status="delivered")
    recent = await repo.list_orders_for_owner("B", limit=1)

    assert _ids(delivered) == ["4", "2"]
    assert _ids(recent) == ["4"]


@pytest.mark.anyio
async def test_list_orders_for_unknown_owner_is_empty(store, settings):
    result = await _repo(store, settings).list_orders_for_owner("ghost")
    assert result == {"success": True, "data": []}


@pytest.mark.anyio
@pytest.mark.parametrize("strategy", [ScanStrategy.INDEXED, ScanStrategy.NESTED])
async def test_list_all_orders(store, settings, strategy):
    await seed_example(store)
    await seed_flat_order(store, "legacy-1", createdAt="2023-12-31T00:00:00Z")

    result = await _repo(store, settings).list_all_orders(strategy=strategy)

    assert result["success"] is True
    assert "partial" not in result
    assert _ids(result) == ["3", "2", "1", "legacy-1"]
    names = {order.id: order.owner_name for order in result["data"]}
    assert names == {"1": "Amina", "2": "Brahim", "3": "Brahim", "legacy-1": None}


@pytest.mark.anyio
async def test_list_all_orders_same_ids_under_both_strategies(store, settings):
    await seed_example(store)
    for owner in "CDE":
        await seed_owner(store, owner)
        await seed_order(store, owner, f"{owner}-1", status="cooking")
    await seed_order(store, "ghost", "7", status="pending")
    repo = _repo(store, settings)

    indexed = await repo.list_all_orders(strategy=ScanStrategy.INDEXED)
    nested = await repo.list_all_orders(strategy=ScanStrategy.NESTED)

    assert set(_ids(indexed)) == set(_ids(nested))
    assert len(_ids(indexed)) == 6


@pytest.mark.anyio
async def test_list_all_orders_best_effort_is_partial(store, settings):
    await seed_example(store)
    flaky = FlakyStore(store, scatter=False, fail_partitions=[owner_partition("B")])

    result = await _repo(flaky, settings).list_all_orders()

    assert result["success"] is True
    assert result["partial"] is True
    assert _ids(result) == ["1"]
    assert any(owner_partition("B") in warning for warning in result["warnings"])


@pytest.mark.anyio
async def test_list_all_orders_fail_fast(store, settings):
    await seed_example(store)
    flaky = FlakyStore(store, scatter=False, fail_partitions=[owner_partition("B")])
    repo = _repo(flaky, settings, fanout_policy=FanoutPolicy.FAIL_FAST)

    with pytest.raises(PartialAggregationFailure):
        await repo.list_all_orders()


@pytest.mark.anyio
async def test_list_all_orders_skips_unreadable_record(store, settings):
    await seed_example(store)
    await seed_order(store, "A", "odd", items="not-a-list", total="abc")

    result = await _repo(store, settings).list_all_orders()

    odd = next(order for order in result["data"] if order.id == "odd")
    assert odd.items == [] and odd.total == 0


@pytest.mark.anyio
async def test_update_order_ignores_created_at(store, settings):
    await seed_example(store)
    repo = _repo(store, settings)

    result = await repo.update_order("2", {"notes": "ring twice", "createdAt": "1999-01-01"})

    assert result == {"success": True, "data": {"id": "2", "ownerId": "B"}}
    record = await store.get_by_key(owner_partition("B"), "2")
    assert record["notes"] == "ring twice"
    assert record["createdAt"] == "2024-01-02T10:00:00Z"
    assert isinstance(record["updatedAt"], StoredTimestamp)


@pytest.mark.anyio
async def test_update_missing_order(store, settings):
    await seed_example(store)
    result = await _repo(store, settings).update_order("nope", {"notes": "x"})
    assert result["error"]["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_delete_order(store, settings):
    await seed_example(store)
    repo = _repo(store, settings)

    result = await repo.delete_order("1")

    assert result["data"] == {"id": "1", "ownerId": "A"}
    assert await store.get_by_key(owner_partition("A"), "1") is None
    assert (await repo.delete_order("1"))["error"]["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_transition_writes_status_and_extra_only(store, settings):
    await seed_example(store)
    before = await store.get_by_key(owner_partition("B"), "3")
    delivered_at = datetime(2024, 2, 1, 18, 0, tzinfo=timezone.utc)

    result = await _repo(store, settings).transition_status(
        "3", "delivered", {"deliveredAt": delivered_at}, owner_id="B"
    )

    assert result["data"] == {"id": "3", "ownerId": "B", "status": "delivered"}
    after = await store.get_by_key(owner_partition("B"), "3")
    assert after["status"] == "delivered"
    assert after["deliveredAt"].to_datetime() == delivered_at
    written = ("status", "deliveredAt", "updatedAt")
    untouched = {k: v for k, v in after.items() if k not in written}
    assert untouched == {
        k: v for k, v in before.items() if k not in ("status", "updatedAt")
    }


@pytest.mark.anyio
async def test_transition_counts_metric(store, settings):
    await seed_example(store)
    labels = {"status": "cooking"}
    before = REGISTRY.get_sample_value("order_status_transitions_total", labels) or 0

    await _repo(store, settings).transition_status("1", "cooking")

    assert REGISTRY.get_sample_value("order_status_transitions_total", labels) == before + 1


@pytest.mark.anyio
async def test_named_transitions(store, settings):
    await seed_example(store)
    repo = _repo(store, settings)
    partition = owner_partition("B")

    await repo.accept("3")
    accepted = await store.get_by_key(partition, "3")
    await repo.start_delivery("3")
    started = await store.get_by_key(partition, "3")
    await repo.mark_delivered("3", {"signature": "ok"})
    delivered = await store.get_by_key(partition, "3")

    assert accepted["status"] == "confirmed" and "acceptedAt" in accepted
    assert started["status"] == "on-the-way" and "startedAt" in started
    assert delivered["status"] == "delivered"
    assert delivered["deliveryData"] == {"signature": "ok"}
    assert isinstance(delivered["deliveredAt"], StoredTimestamp)


@pytest.mark.anyio
async def test_complete_order_and_payment(store, settings):
    await seed_owner(store, "A")
    repo = _repo(store, settings)
    order_id = (await repo.create_draft_order("A", {}))["data"]["id"]

    await repo.complete_order(order_id, "card", owner_id="A")
    completed = await store.get_by_key(owner_partition("A"), order_id)
    await repo.update_payment(order_id, "cash", owner_id="A")
    paid = await store.get_by_key(owner_partition("A"), order_id)

    assert completed["status"] == "pending"
    assert completed["paymentMethod"] == "card"
    assert isinstance(completed["orderConfirmedAt"], StoredTimestamp)
    assert paid["paymentMethod"] == "cash"
    assert isinstance(paid["paymentConfirmedAt"], StoredTimestamp)

    order = (await repo.get_order(order_id))["data"]
    assert order.order_confirmed_at is not None
    assert order.payment_confirmed_at is not None


@pytest.mark.anyio
async def test_transition_missing_order(store, settings):
    await seed_example(store)
    result = await _repo(store, settings).accept("nope")
    assert result["error"]["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_transition_write_failure_propagates(store, settings):
    await seed_example(store)
    with pytest.raises(WriteFailure):
        await _repo(FlakyStore(store, fail_writes=True), settings).accept("1", owner_id="A")


@pytest.mark.anyio
@pytest.mark.parametrize("strategy", [ScanStrategy.INDEXED, ScanStrategy.NESTED])
async def test_get_statistics(store, settings, strategy):
    await seed_example(store)

    result = await _repo(store, settings, include_legacy_orders=False).get_statistics(
        strategy=strategy
    )

    assert result == {"success": True, "data": {"pending": 2, "delivered": 1, "total": 3}}


@pytest.mark.anyio
async def test_get_statistics_partial(store, settings):
    await seed_example(store)
    flaky = FlakyStore(store, scatter=False, fail_partitions=[owner_partition("A")])

    result = await _repo(flaky, settings).get_statistics()

    assert result["data"] == {"pending": 1, "delivered": 1, "total": 2}
    assert result["partial"] is True


@pytest.mark.anyio
async def test_locating_with_bad_owner_id_is_invalid(store, settings):
    repo = _repo(store, settings)

    result = await repo.get_order("1", owner_id="a/b")

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID"
    assert (await repo.delete_order("1", owner_id=""))["error"]["code"] == "INVALID"


@pytest.mark.anyio
async def test_update_order_cannot_change_id(store, settings):
    await seed_example(store)

    await _repo(store, settings).update_order("2", {"id": "99", "notes": "x"})

    record = await store.get_by_key(owner_partition("B"), "2")
    assert record["id"] == "2"
    assert await store.get_by_key(owner_partition("B"), "99") is None


@pytest.mark.anyio
async def test_get_order_with_unreadable_partition_is_a_scan_failure(store, settings):
    await seed_example(store)
    await seed_flat_order(store, "2", status="canceled")
    flaky = FlakyStore(store, scatter=False, fail_partitions=[owner_partition("B")])
    repo = _repo(flaky, settings)

    # a stale flat copy must not stand in for the unreadable owner partition
    with pytest.raises(PartitionScanFailure):
        await repo.get_order("2")
    with pytest.raises(PartitionScanFailure):
        await repo.get_order("3")
    assert (await repo.get_order("1"))["data"].owner_id == "A"


@pytest.mark.anyio
async def test_list_all_orders_places_flat_orders_by_order_date(store, settings):
    await seed_example(store)
    await seed_flat_order(store, "legacy-2", orderDate="2024-01-02T12:00:00Z")
    repo = _repo(store, settings)

    first = await repo.list_all_orders()
    second = await repo.list_all_orders()

    assert _ids(first) == ["3", "legacy-2", "2", "1"]
    assert _ids(second) == _ids(first)


async def _seed_restaurants(store):
    await seed_owner(store, "A")
    await seed_owner(store, "B")
    for owner_id, order_id, restaurant, status, day in (
        ("A", "1", "r1", "pending", 1),
        ("B", "2", "r1", "delivered", 3),
        ("B", "3", "r2", "pending", 4),
    ):
        await seed_order(
            store,
            owner_id,
            order_id,
            restaurantId=restaurant,
            status=status,
            createdAt=f"2024-01-0{day}T10:00:00Z",
        )
    await seed_flat_order(
        store, "L", restaurantId="r1", status="pending", orderDate="2024-01-02T10:00:00Z"
    )


@pytest.mark.anyio
@pytest.mark.parametrize("strategy", [ScanStrategy.INDEXED, ScanStrategy.NESTED])
async def test_list_orders_for_restaurant(store, settings, strategy):
    await _seed_restaurants(store)
    repo = _repo(store, settings)

    everything = await repo.list_orders_for_restaurant("r1", strategy=strategy)
    delivered = await repo.list_orders_for_restaurant("r1", "delivered", strategy=strategy)
    recent = await repo.list_orders_for_restaurant("r1", limit=2, strategy=strategy)

    assert _ids(everything) == ["2", "L", "1"]
    assert _ids(delivered) == ["2"]
    assert _ids(recent) == ["2", "L"]
    assert {order.restaurant_id for order in everything["data"]} == {"r1"}


@pytest.mark.anyio
async def test_list_orders_for_restaurant_requires_id(store, settings):
    result = await _repo(store, settings).list_orders_for_restaurant("")
    assert result["error"]["code"] == "INVALID"
