"""HTTP routes over :class:`~orderhub.app.repos.orders_repo.OrderRepository`.

Bodies are the repository's result envelopes. ``NOT_FOUND`` envelopes are
returned with status 404 and ``INVALID`` ones with 400.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import ScanStrategy

from .errors import INVALID, NOT_FOUND
from .repos.orders_repo import OrderRepository

router = APIRouter(prefix="/api")

_ERROR_STATUS = {NOT_FOUND: 404, INVALID: 400}


class StatusPayload(BaseModel):
    status: str
    extra: Dict[str, Any] = Field(default_factory=dict)


class DeliveryPayload(BaseModel):
    delivery_data: Dict[str, Any] | None = None


class PaymentPayload(BaseModel):
    payment_method: str
    status: str = "pending"


def _repo(request: Request) -> OrderRepository:
    return request.app.state.orders_repo


def _respond(envelope: dict, status_code: int = 200) -> JSONResponse:
    if not envelope.get("success"):
        status_code = _ERROR_STATUS.get(envelope["error"]["code"], 400)
    return JSONResponse(jsonable_encoder(envelope), status_code=status_code)


@router.post("/owners/{owner_id}/orders")
async def create_order(
    owner_id: str, request: Request, payload: Dict[str, Any] = Body(...)
) -> JSONResponse:
    return _respond(await _repo(request).create_order(owner_id, payload), 201)


@router.post("/owners/{owner_id}/orders/draft")
async def create_draft_order(
    owner_id: str, request: Request, payload: Dict[str, Any] = Body(...)
) -> JSONResponse:
    return _respond(await _repo(request).create_draft_order(owner_id, payload), 201)


@router.get("/owners/{owner_id}/orders")
async def list_owner_orders(
    owner_id: str,
    request: Request,
    status: str | None = None,
    limit: int | None = Query(None, ge=0),
) -> JSONResponse:
    return _respond(
        await _repo(request).list_orders_for_owner(owner_id, status=status, limit=limit)
    )


@router.get("/orders")
async def list_all_orders(
    request: Request, strategy: ScanStrategy | None = None
) -> JSONResponse:
    """List orders of every owner plus the flat collection."""
    return _respond(await _repo(request).list_all_orders(strategy=strategy))


@router.get("/restaurants/{restaurant_id}/orders")
async def list_restaurant_orders(
    restaurant_id: str,
    request: Request,
    status: str | None = None,
    limit: int | None = Query(None, ge=0),
    strategy: ScanStrategy | None = None,
) -> JSONResponse:
    return _respond(
        await _repo(request).list_orders_for_restaurant(
            restaurant_id, status=status, limit=limit, strategy=strategy
        )
    )


# registered before /orders/{order_id} so "stats" is not taken as an id
@router.get("/orders/stats")
async def order_stats(
    request: Request,
    status: str | None = None,
    strategy: ScanStrategy | None = None,
) -> JSONResponse:
    return _respond(await _repo(request).get_statistics(status, strategy=strategy))


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str, request: Request, owner_id: str | None = None
) -> JSONResponse:
    return _respond(await _repo(request).get_order(order_id, owner_id=owner_id))


@router.patch("/orders/{order_id}")
async def update_order(
    order_id: str,
    request: Request,
    patch: Dict[str, Any] = Body(...),
    owner_id: str | None = None,
) -> JSONResponse:
    return _respond(
        await _repo(request).update_order(order_id, patch, owner_id=owner_id)
    )


@router.delete("/orders/{order_id}")
async def delete_order(
    order_id: str, request: Request, owner_id: str | None = None
) -> JSONResponse:
    return _respond(await _repo(request).delete_order(order_id, owner_id=owner_id))


@router.post("/orders/{order_id}/status")
async def transition_status(
    order_id: str,
    payload: StatusPayload,
    request: Request,
    owner_id: str | None = None,
) -> JSONResponse:
    return _respond(
        await _repo(request).transition_status(
            order_id, payload.status, payload.extra, owner_id=owner_id
        )
    )


@router.post("/orders/{order_id}/accept")
async def accept_order(
    order_id: str, request: Request, owner_id: str | None = None
) -> JSONResponse:
    return _respond(await _repo(request).accept(order_id, owner_id=owner_id))


@router.post("/orders/{order_id}/start-delivery")
async def start_delivery(
    order_id: str, request: Request, owner_id: str | None = None
) -> JSONResponse:
    return _respond(await _repo(request).start_delivery(order_id, owner_id=owner_id))


@router.post("/orders/{order_id}/deliver")
async def mark_delivered(
    order_id: str,
    request: Request,
    payload: DeliveryPayload | None = None,
    owner_id: str | None = None,
) -> JSONResponse:
    delivery_data = payload.delivery_data if payload else None
    return _respond(
        await _repo(request).mark_delivered(
            order_id, delivery_data, owner_id=owner_id
        )
    )


@router.post("/orders/{order_id}/complete")
async def complete_order(
    order_id: str,
    payload: PaymentPayload,
    request: Request,
    owner_id: str | None = None,
) -> JSONResponse:
    return _respond(
        await _repo(request).complete_order(
            order_id, payload.payment_method, owner_id=owner_id
        )
    )


@router.post("/orders/{order_id}/payment")
async def update_payment(
    order_id: str,
    payload: PaymentPayload,
    request: Request,
    owner_id: str | None = None,
) -> JSONResponse:
    return _respond(
        await _repo(request).update_payment(
            order_id, payload.payment_method, payload.status, owner_id=owner_id
        )
    )


__all__ = ["router"]
