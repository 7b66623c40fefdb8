"""
Order engine: reservation-backed order creation, cancellation and reads.

Creation and cancellation each run in one transaction. Stock moves only
through the guarded UPDATEs in ``inventory_service`` and status changes only
through :func:`transition_order_status`, which re-checks the expected current
status in the same statement.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

from sqlalchemy import update
from sqlmodel import Session, select

from marketplace.config import settings
from marketplace.constants.order_status import OrderStatus, can_transition
from marketplace.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketplace.models.order import Order
from marketplace.models.order_event import OrderEvent
from marketplace.models.order_item import OrderItem
from marketplace.notifications import NotificationDispatcher, NotificationKind
from marketplace.services.inventory_service import (
    fetch_items_by_ids,
    reserve_stock,
    restock_order_items,
)
from marketplace.services.order_event_service import list_order_events, log_order_event
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)

OrderLine = Tuple[int, int]


def transition_order_status(
    session: Session,
    order_id: int,
    expected: OrderStatus,
    target: OrderStatus,
) -> bool:
    """Compare-and-set the order status. False when the order was not ``expected``."""
    if not can_transition(expected, target):
        raise ValueError(f"Illegal order transition {expected.value} -> {target.value}")

    result = session.execute(
        update(Order)
        .where(Order.id == order_id)
        .where(Order.status == expected.value)
        .values(status=target.value, updated_at=datetime.utcnow())
    )
    return result.rowcount == 1


def merge_order_lines(lines: Iterable[OrderLine]) -> "OrderedDict[int, int]":
    """Validate quantities and fold repeated item ids into one line."""
    merged: "OrderedDict[int, int]" = OrderedDict()
    for item_id, quantity in lines:
        if quantity is None or int(quantity) < 1:
            raise ValidationError(
                f"Quantity for item {item_id} must be at least 1",
                item_id=item_id,
                quantity=quantity,
            )
        merged[item_id] = merged.get(item_id, 0) + int(quantity)

    if not merged:
        raise ValidationError("An order needs at least one item")
    return merged


class OrderService:
    def __init__(self, session: Session, dispatcher: NotificationDispatcher):
        self.session = session
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------

    def create_order(self, user_id: int, lines: Sequence[OrderLine]) -> Order:
        try:
            order = self.reserve_order(user_id, lines)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(order)
        logger.info(f"Order {order.id} created for user {user_id}. Total: {order.total}")

        self.notify_order_placed(order)
        return order

    def reserve_order(self, user_id: int, lines: Sequence[OrderLine]) -> Order:
        """
        Insert the order, its items and the stock reservations without
        committing, so checkout can add shipments to the same transaction.
        """
        requested = merge_order_lines(lines)

        items = fetch_items_by_ids(self.session, requested.keys())
        missing = [item_id for item_id in requested if item_id not in items]
        if missing:
            raise NotFoundError(
                f"Item(s) not found: {', '.join(str(i) for i in missing)}",
                item_ids=missing,
            )

        for item_id, quantity in requested.items():
            item = items[item_id]
            if item.stock < quantity:
                raise InsufficientStockError(item.id, item.title, item.stock, quantity)

        # prices are snapshotted here and never read from the catalog again
        total = Decimal("0")
        for item_id, quantity in requested.items():
            total += items[item_id].price * quantity

        order = Order(user_id=user_id, total=total, status=OrderStatus.PENDING.value)
        self.session.add(order)
        self.session.flush()

        for item_id, quantity in requested.items():
            item = items[item_id]
            self.session.add(
                OrderItem(
                    order_id=order.id,
                    item_id=item.id,
                    vendor_id=item.vendor_id,
                    title=item.title,
                    unit_price=item.price,
                    quantity=quantity,
                )
            )
            reserve_stock(self.session, item, quantity)

        log_order_event(
            self.session,
            order.id,
            "order_placed",
            "Order placed",
            created_by=f"user:{user_id}",
            meta={"total": str(total), "item_count": len(requested)},
        )
        self.session.flush()
        return order

    def notify_order_placed(self, order: Order) -> None:
        estimated_delivery = datetime.utcnow() + timedelta(days=settings.ESTIMATED_DELIVERY_DAYS)
        self.dispatcher.enqueue(
            NotificationKind.ORDER_CONFIRMATION,
            order.user_id,
            {
                "order_id": order.id,
                "total_amount": str(order.total),
                "item_count": len(order.items),
                "estimated_delivery": estimated_delivery,
            },
            related_id=order.id,
        )

    # ------------------------------------------------------------------
    # cancellation
    # ------------------------------------------------------------------

    def cancel_order(self, order_id: int, user_id: int) -> Order:
        order = self.get_order(order_id, user_id)

        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                "order",
                order.status,
                OrderStatus.PENDING.value,
                f"Cannot cancel order with status: {order.status}. "
                "Only PENDING orders can be cancelled.",
            )

        try:
            if not transition_order_status(
                self.session, order.id, OrderStatus.PENDING, OrderStatus.CANCELLED
            ):
                # lost the race to a payment callback or a second cancel
                self.session.refresh(order)
                raise InvalidStateError("order", order.status, OrderStatus.PENDING.value)

            restored = restock_order_items(self.session, order.id)

            log_order_event(
                self.session,
                order.id,
                "order_cancelled",
                "Order cancelled by customer",
                created_by=f"user:{user_id}",
                meta={"items_restocked": restored},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(order)
        logger.info(f"Order {order.id} cancelled by user {user_id}")
        return order

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: int, user_id: int) -> Order:
        order = self.session.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)

        if order.user_id != user_id:
            raise ForbiddenError("You do not have access to this order", order_id=order_id)

        return order

    def list_orders(self, user_id: int, page: int = 1, limit: int = 20, serializer=None) -> dict:
        query = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return paginate(
            session=self.session, query=query, page=page, limit=limit, serializer=serializer
        )

    def order_timeline(self, order_id: int, user_id: int) -> List[OrderEvent]:
        order = self.get_order(order_id, user_id)
        return list_order_events(self.session, order.id)
