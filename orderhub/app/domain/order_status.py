"""Order status enumeration and display labels."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Enumerate the lifecycle states an order can be stored with."""

    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    COOKING = "cooking"
    READY_FOR_DELIVERY = "ready-for-delivery"
    ON_THE_WAY = "on-the-way"
    DELIVERED = "delivered"
    DINE_IN = "dine-in"
    CANCELED = "canceled"
    REFUNDED = "refunded"


DEFAULT_STATUS = OrderStatus.PENDING.value

KNOWN_STATUSES: tuple[str, ...] = tuple(status.value for status in OrderStatus)

# Statuses counted in order statistics; drafts are not placed orders yet.
STATISTIC_STATUSES: tuple[str, ...] = tuple(
    code for code in KNOWN_STATUSES if code != OrderStatus.DRAFT.value
)

STATUS_LABELS: dict[str, str] = {
    OrderStatus.DRAFT.value: "Draft",
    OrderStatus.PENDING.value: "Pending",
    OrderStatus.CONFIRMED.value: "Confirmed",
    OrderStatus.ACCEPTED.value: "Accepted",
    OrderStatus.COOKING.value: "Cooking",
    OrderStatus.READY_FOR_DELIVERY.value: "Ready for Delivery",
    OrderStatus.ON_THE_WAY.value: "On the Way",
    OrderStatus.DELIVERED.value: "Delivered",
    OrderStatus.DINE_IN.value: "Dine-in",
    OrderStatus.CANCELED.value: "Canceled",
    OrderStatus.REFUNDED.value: "Refunded",
}


def status_label(status: str | None) -> str:
    """Return the human-readable label for ``status``.

    Unknown codes are shown with their first letter capitalized; an empty
    code is shown as ``"Unknown"``.
    """

    if not status:
        return "Unknown"
    label = STATUS_LABELS.get(status)
    if label is not None:
        return label
    return status[0].upper() + status[1:]
