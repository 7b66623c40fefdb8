from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from marketplace.constants.order_status import ShipmentStatus


class Shipment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    vendor_id: int = Field(index=True)
    address_id: int = Field(foreign_key="address.id")
    notes: Optional[str] = None

    status: str = Field(default=ShipmentStatus.CREATED.value)
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    pickup_pin: Optional[str] = None

    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
