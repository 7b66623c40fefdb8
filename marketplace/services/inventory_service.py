# marketplace/services/inventory_service.py
import logging
from datetime import datetime
from typing import Dict, Iterable

from sqlalchemy import update
from sqlmodel import Session, select

from marketplace.errors import InsufficientStockError, NotFoundError
from marketplace.models.item import Item
from marketplace.models.order_item import OrderItem

logger = logging.getLogger(__name__)


def fetch_items_by_ids(session: Session, item_ids: Iterable[int]) -> Dict[int, Item]:
    """Load every referenced item in one query, keyed by id."""
    ids = list(set(item_ids))
    if not ids:
        return {}
    items = session.exec(select(Item).where(Item.id.in_(ids))).all()
    return {item.id: item for item in items}


def adjust_stock(session: Session, item_id: int, delta: int) -> bool:
    """
    Apply ``delta`` to an item's stock in a single UPDATE statement.

    Decrements carry a ``stock >= -delta`` guard so two concurrent
    reservations can never both take the last units. Returns False when no
    row matched (unknown item, or not enough stock for a decrement).
    """
    statement = update(Item).where(Item.id == item_id)
    if delta < 0:
        statement = statement.where(Item.stock >= -delta)

    result = session.execute(
        statement.values(stock=Item.stock + delta, updated_at=datetime.utcnow())
    )
    return result.rowcount == 1


def reserve_stock(session: Session, item: Item, quantity: int) -> None:
    if adjust_stock(session, item.id, -quantity):
        logger.info(f"Reserved {quantity} x item {item.id}")
        return

    # guard missed: someone reserved between our read and this write
    available = session.exec(select(Item.stock).where(Item.id == item.id)).one()
    raise InsufficientStockError(item.id, item.title, available, quantity)


def restore_stock(session: Session, item_id: int, quantity: int) -> None:
    if not adjust_stock(session, item_id, quantity):
        raise NotFoundError(f"Item {item_id} not found", item_id=item_id)
    logger.info(f"Restored {quantity} x item {item_id}")


def restock_order_items(session: Session, order_id: int) -> int:
    """Return every order item's quantity to stock. Caller commits."""
    order_items = session.exec(
        select(OrderItem).where(OrderItem.order_id == order_id)
    ).all()

    for item in order_items:
        restore_stock(session, item.item_id, item.quantity)

    return len(order_items)
