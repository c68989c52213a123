# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# Counters
scatter_fallbacks_total = Counter(
    "order_scatter_fallbacks_total",
    "Cross-partition queries that fell back to nested enumeration",
    ["operation"],
)
scatter_fallbacks_total.labels(operation="scan").inc(0)

partition_failures_total = Counter(
    "order_partition_failures_total",
    "Owner partition reads that failed during a fan-out",
    ["operation"],
)
partition_failures_total.labels(operation="scan").inc(0)

orders_created_total = Counter("orders_created_total", "Total orders created")
orders_created_total.inc(0)

order_transitions_total = Counter(
    "order_status_transitions_total", "Status transitions written", ["status"]
)

store_slow_queries_total = Counter(
    "store_slow_queries_total", "Store statements over the slow threshold", ["store", "verb"]
)

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
