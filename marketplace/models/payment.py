from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from marketplace.constants.order_status import PaymentStatus


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    order_id: int = Field(foreign_key="order.id", index=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2)
    currency: str
    method: str  # mobile_money | card | bank_transfer | cash_on_pickup
    status: str = Field(default=PaymentStatus.PENDING.value, index=True)

    external_reference: Optional[str] = Field(default=None, index=True)
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
