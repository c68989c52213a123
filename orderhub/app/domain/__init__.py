"""Canonical order shapes and the record normalizer."""

from .normalize import normalize, resolve_status, standardize_item, standardize_items
from .order_status import (
    DEFAULT_STATUS,
    KNOWN_STATUSES,
    STATISTIC_STATUSES,
    OrderStatus,
    status_label,
)
from .schema import DEFAULT_COORDINATES, Coordinates, Order, OrderItem, Owner

__all__ = [
    "Coordinates",
    "DEFAULT_COORDINATES",
    "DEFAULT_STATUS",
    "KNOWN_STATUSES",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Owner",
    "STATISTIC_STATUSES",
    "normalize",
    "resolve_status",
    "standardize_item",
    "standardize_items",
    "status_label",
]
