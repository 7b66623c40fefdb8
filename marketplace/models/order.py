from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from marketplace.constants.order_status import OrderStatus
from marketplace.models.order_item import OrderItem


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)

    # snapshot of sum(unit_price * quantity), never recomputed
    total: Decimal = Field(max_digits=10, decimal_places=2)

    status: str = Field(default=OrderStatus.PENDING.value, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["OrderItem"] = Relationship(back_populates="order")
