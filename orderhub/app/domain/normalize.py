"""Collapse heterogeneous stored order records into canonical orders.

Stored records are the union of every historical write shape: the customer
app writes ``phoneNumber``/``deliveryLocation``/``priceAtPurchase``, the admin
panel writes ``customerPhone``/``coordinates``/``price``, older producers
nest the location inside ``address`` or only set ``orderStatus``. Each
canonical field is resolved from an explicit, ordered tuple of candidates;
the first candidate that is present (not ``None``) wins. The canonical field
name is always among the candidates so normalizing an already canonical order
is a no-op.

:func:`normalize` never fails on missing or mistyped fields. The only record
it rejects with :class:`~orderhub.app.errors.NormalizationError` is one that
is not a mapping at all.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Mapping

from ..errors import NormalizationError
from .order_status import DEFAULT_STATUS
from .schema import DEFAULT_COORDINATES, Coordinates, Order, OrderItem

logger = logging.getLogger(__name__)

# Coordinate sources in priority order: explicit coordinates, the customer
# app's delivery location, then a location nested inside the address object.
COORDINATE_SOURCES: tuple[tuple[str, ...], ...] = (
    ("coordinates",),
    ("deliveryLocation",),
    ("address",),
)

# Conversion methods offered by store-native timestamp objects.
TIMESTAMP_CONVERTERS: tuple[str, ...] = ("to_datetime", "ToDatetime", "toDate")


def _get(raw: Any, *path: str) -> Any:
    """Return the value at ``path`` inside nested mappings, or ``None``."""
    current = raw
    for part in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _first(*candidates: Any, default: Any = None) -> Any:
    for value in candidates:
        if value is not None:
            return value
    return default


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _number(value: Any, default: float = 0.0) -> float:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if _is_number(value):
        return str(value)
    return default


def _optional_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _list(value: Any) -> list | None:
    return list(value) if isinstance(value, (list, tuple)) else None


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def coerce_timestamp(value: Any) -> datetime | None:
    """Convert a timestamp-like value into an aware ``datetime``.

    Accepts native ``datetime``/``date`` values, store-native timestamp
    objects exposing one of :data:`TIMESTAMP_CONVERTERS`, and ISO-8601
    strings. Anything else yields ``None``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return _aware(value)
    for attr in TIMESTAMP_CONVERTERS:
        convert = getattr(value, attr, None)
        if callable(convert):
            try:
                converted = convert()
            except (TypeError, ValueError, OverflowError):
                return None
            if isinstance(converted, datetime):
                return _aware(converted)
            return None
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return _aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def derive_coordinates(raw: Mapping[str, Any]) -> Coordinates:
    """Return the first numeric latitude/longitude pair among the sources."""

    for source in COORDINATE_SOURCES:
        candidate = _get(raw, *source)
        latitude = _get(candidate, "latitude")
        longitude = _get(candidate, "longitude")
        if _is_number(latitude) and _is_number(longitude):
            return Coordinates(latitude=float(latitude), longitude=float(longitude))
    return DEFAULT_COORDINATES.model_copy()


def resolve_status(raw: Mapping[str, Any]) -> str:
    """Return the canonical status code of ``raw``.

    ``status`` is authoritative; the legacy ``orderStatus`` mirror is only
    consulted when ``status`` is missing or empty.
    """

    return (
        _text(raw.get("status"))
        or _text(raw.get("orderStatus"))
        or DEFAULT_STATUS
    )


def standardize_item(raw: Mapping[str, Any]) -> OrderItem:
    """Map one raw order line onto :class:`OrderItem`."""

    price = _number(_first(raw.get("price"), raw.get("priceAtPurchase")), 0.0)
    quantity = _number(raw.get("quantity"), 1)
    image = raw.get("image")
    subtotal = raw.get("subtotal")
    return OrderItem(
        id=_text(_first(raw.get("productId"), raw.get("id"))),
        name=_text(raw.get("name")),
        price=price,
        quantity=quantity,
        image=_text(_first(_get(image, "uri"), image if isinstance(image, str) else None)),
        variations=_first(
            _list(raw.get("variations")),
            _list(raw.get("selectedVariations")),
            default=[],
        ),
        addons=_first(
            _list(raw.get("addons")),
            _list(raw.get("selectedAddons")),
            default=[],
        ),
        subtotal=_number(subtotal, price * quantity) if subtotal is not None else price * quantity,
    )


def standardize_items(raw_items: Any) -> list[OrderItem]:
    if not isinstance(raw_items, (list, tuple)):
        return []
    items = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            logger.debug("skipping non-mapping order line %r", raw)
            continue
        items.append(standardize_item(raw))
    return items


def normalize(
    raw: Mapping[str, Any] | Order,
    owner_id: str | None = None,
    *,
    order_id: str | None = None,
) -> Order:
    """Return the canonical :class:`Order` for a stored record.

    ``owner_id`` and ``order_id`` come from the record's storage location and
    take precedence over ids written inside the record.
    """

    if isinstance(raw, Order):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise NormalizationError(
            f"order record must be a mapping, got {type(raw).__name__}"
        )

    now = datetime.now(timezone.utc)
    address = raw.get("address")
    resolved_id = _text(_first(order_id, raw.get("id")))

    return Order(
        id=resolved_id,
        owner_id=_text(_first(owner_id, raw.get("ownerId"), raw.get("userId"))),
        driver_id=_optional_text(raw.get("driverId")),
        customer_name=_text(raw.get("customerName")),
        customer_phone=_text(_first(raw.get("phoneNumber"), raw.get("customerPhone"))),
        address=_text(
            _first(
                _get(address, "address"),
                address if isinstance(address, str) else None,
                raw.get("deliveryAddress"),
                _get(raw, "deliveryLocation", "address"),
            )
        ),
        delivery_instructions=_text(
            _first(
                raw.get("deliveryInstructions"),
                _get(address, "instructions"),
                raw.get("additionalNote"),
                _get(raw, "deliveryLocation", "instructions"),
                raw.get("notes"),
            )
        ),
        coordinates=derive_coordinates(raw),
        status=resolve_status(raw),
        payment_status=_text(raw.get("paymentStatus")) or "unpaid",
        payment_method=_text(raw.get("paymentMethod")) or "cash_on_delivery",
        total=_number(_first(raw.get("total"), raw.get("grandTotal"))),
        subtotal=_number(raw.get("subtotal")),
        delivery_fee=_number(raw.get("deliveryFee")),
        tip_amount=_number(raw.get("tipAmount")),
        items=standardize_items(raw.get("items")),
        notes=_text(_first(raw.get("notes"), raw.get("additionalNote"))),
        order_number=_text(_first(raw.get("orderNumber"), resolved_id or None)),
        # flat legacy orders carry their creation time as orderDate
        created_at=coerce_timestamp(_first(raw.get("createdAt"), raw.get("orderDate")))
        or now,
        updated_at=coerce_timestamp(raw.get("updatedAt")) or now,
        order_confirmed_at=coerce_timestamp(raw.get("orderConfirmedAt")),
        payment_confirmed_at=coerce_timestamp(raw.get("paymentConfirmedAt")),
        restaurant_id=_text(raw.get("restaurantId")),
        order_type=_text(_first(raw.get("orderType"), raw.get("deliveryOption")))
        or "delivery",
        owner_name=_optional_text(_first(raw.get("ownerName"), raw.get("userName"))),
    )


__all__ = [
    "COORDINATE_SOURCES",
    "TIMESTAMP_CONVERTERS",
    "coerce_timestamp",
    "derive_coordinates",
    "normalize",
    "resolve_status",
    "standardize_item",
    "standardize_items",
]
