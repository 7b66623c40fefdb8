from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint


class Item(SQLModel, table=True):
    """Sellable item owned by a vendor. ``stock`` is the inventory ledger."""

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_item_stock_non_negative"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    vendor_id: int = Field(index=True)
    title: str
    price: Decimal = Field(max_digits=10, decimal_places=2)
    stock: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
