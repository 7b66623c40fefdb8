from typing import List

from fastapi import APIRouter, Depends, status

from marketplace.dependencies.services import get_order_service
from marketplace.schemas.orders_schemas import (
    CancelOrderResponse,
    CreateOrderRequest,
    OrderEventRead,
    OrderListResponse,
    OrderRead,
)
from marketplace.services.order_service import OrderService
from marketplace.utils.token import CurrentUser, get_current_user

router = APIRouter()


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    data: CreateOrderRequest,
    orders: OrderService = Depends(get_order_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    order = orders.create_order(
        current_user.id,
        [(line.item_id, line.quantity) for line in data.items],
    )
    return order


@router.get("", response_model=OrderListResponse)
def list_orders(
    page: int = 1,
    limit: int = 20,
    orders: OrderService = Depends(get_order_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return orders.list_orders(
        current_user.id, page=page, limit=limit, serializer=OrderRead.model_validate
    )


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return orders.get_order(order_id, current_user.id)


@router.get("/{order_id}/events", response_model=List[OrderEventRead])
def get_order_timeline(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return orders.order_timeline(order_id, current_user.id)


@router.delete("/{order_id}", response_model=CancelOrderResponse)
def cancel_order(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Cancel a PENDING order and return its items to stock."""
    order = orders.cancel_order(order_id, current_user.id)
    return {"message": "Order cancelled successfully", "order": order}
