"""Canonical order, item and owner shapes consumed by every caller.

Field names are snake_case in Python and camelCase on the wire, matching the
field names raw records are stored with. Dumping a model with
``by_alias=True`` therefore yields a record the normalizer maps back onto the
same model unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from .order_status import DEFAULT_STATUS, status_label


class CanonicalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(CanonicalModel):
    latitude: float
    longitude: float


# Beni Mellal city centre; used when a record carries no usable location.
DEFAULT_COORDINATES = Coordinates(latitude=32.3373, longitude=-6.3498)


class OrderItem(CanonicalModel):
    """One line of an order."""

    id: str = ""
    name: str = ""
    price: float = 0.0
    quantity: float = 1
    image: str = ""
    variations: list[Any] = Field(default_factory=list)
    addons: list[Any] = Field(default_factory=list)
    subtotal: float = 0.0


class Order(CanonicalModel):
    """Canonical order as returned by the repository."""

    id: str
    owner_id: str = ""
    driver_id: str | None = None
    customer_name: str = ""
    customer_phone: str = ""
    address: str = ""
    delivery_instructions: str = ""
    coordinates: Coordinates = Field(
        default_factory=lambda: DEFAULT_COORDINATES.model_copy()
    )
    status: str = DEFAULT_STATUS
    payment_status: str = "unpaid"
    payment_method: str = "cash_on_delivery"
    total: float = 0.0
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    tip_amount: float = 0.0
    items: list[OrderItem] = Field(default_factory=list)
    notes: str = ""
    order_number: str = ""
    created_at: datetime
    updated_at: datetime
    order_confirmed_at: datetime | None = None
    payment_confirmed_at: datetime | None = None
    restaurant_id: str = ""
    order_type: str = "delivery"
    owner_name: str | None = None

    @computed_field(alias="statusLabel")  # type: ignore[misc]
    @property
    def status_label(self) -> str:
        return status_label(self.status)


class Owner(CanonicalModel):
    """An entry of the owner directory; owns one order partition."""

    id: str
    display_name: str = ""
    email: str = ""
    phone: str = ""
