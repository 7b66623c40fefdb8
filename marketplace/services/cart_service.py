from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from marketplace.constants.order_status import CartStatus
from marketplace.models.address import Address
from marketplace.models.cart import Cart


def get_active_cart(session: Session, user_id: int) -> Optional[Cart]:
    return session.exec(
        select(Cart)
        .where(Cart.user_id == user_id)
        .where(Cart.status == CartStatus.ACTIVE.value)
        .order_by(Cart.created_at.desc())
    ).first()


def close_cart(session: Session, cart: Cart) -> None:
    """Mark the cart checked out so it cannot be converted twice. Caller commits."""
    cart.status = CartStatus.CHECKED_OUT.value
    cart.updated_at = datetime.utcnow()
    session.add(cart)


def address_exists(session: Session, address_id: int, user_id: int) -> bool:
    address = session.get(Address, address_id)
    return address is not None and address.user_id == user_id
