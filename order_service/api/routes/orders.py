# order_service/api/routes/orders.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from order_service.api.deps import get_order_service, status_filter, target_status
from order_service.api.schemas.order import ErrorOut, OrderCreate, OrderOut, PageOut
from order_service.models.order import OrderStatus
from order_service.services.orders import DEFAULT_PAGE, DEFAULT_SIZE, OrderService

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])

_NOT_FOUND = {404: {"model": ErrorOut, "description": "Order not found"}}
_BAD_REQUEST = {400: {"model": ErrorOut, "description": "Business rule violated"}}


@router.post("", status_code=status.HTTP_201_CREATED, response_model=OrderOut, responses=_BAD_REQUEST)
def create_order(payload: OrderCreate = Body(...), service: OrderService = Depends(get_order_service)):
    """
    Create an order from inline items. The order always starts PENDING and its
    total is computed server-side from the items.
    """
    order = service.create_order(payload.customer_email, [it.model_dump() for it in payload.items])
    return OrderOut.from_order(order)


@router.get("", response_model=PageOut)
def list_orders(
    page: int = Query(DEFAULT_PAGE, description="Page number (1-1000, 1-indexed); clamped"),
    size: int = Query(DEFAULT_SIZE, description="Items per page (1-100); clamped"),
    status_value: Optional[OrderStatus] = Depends(status_filter),
    service: OrderService = Depends(get_order_service),
):
    """
    Page through orders, newest first. Out-of-range paging values are corrected,
    and an empty page is a normal result.
    """
    return PageOut.from_page(service.list_orders(status=status_value, page=page, size=size))


@router.get("/{order_id}", response_model=OrderOut, responses=_NOT_FOUND)
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    return OrderOut.from_order(service.get_order(order_id))


@router.patch("/{order_id}/cancel", response_model=OrderOut, responses={**_NOT_FOUND, **_BAD_REQUEST})
def cancel_order(order_id: str, service: OrderService = Depends(get_order_service)):
    """Cancel an order. Only PENDING orders can be cancelled."""
    return OrderOut.from_order(service.cancel_order(order_id))


@router.put(
    "/{order_id}/status",
    response_model=OrderOut,
    responses={**_NOT_FOUND, **_BAD_REQUEST, 409: {"model": ErrorOut, "description": "Concurrent update"}},
)
def update_order_status(
    order_id: str,
    new_status: OrderStatus = Depends(target_status),
    service: OrderService = Depends(get_order_service),
):
    """
    Move an order along its lifecycle:
    PENDING -> PROCESSING | CANCELLED, PROCESSING -> SHIPPED | CANCELLED, SHIPPED -> DELIVERED.
    """
    return OrderOut.from_order(service.update_status(order_id, new_status))
