from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime

from marketplace.constants.order_status import CartStatus


class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    status: str = Field(default=CartStatus.ACTIVE.value, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["CartItem"] = Relationship(back_populates="cart")


class CartItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(foreign_key="cart.id", index=True)
    item_id: int = Field(foreign_key="item.id")
    vendor_id: int = Field(index=True)
    quantity: int = 1
    created_at: datetime = Field(default_factory=datetime.utcnow)

    cart: Optional[Cart] = Relationship(back_populates="items")
