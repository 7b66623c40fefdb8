from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

from marketplace.constants.order_status import ShipmentStatus


class ShipmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    vendor_id: int
    address_id: int
    notes: Optional[str] = None
    status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    pickup_pin: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime


class UpdateShipmentRequest(BaseModel):
    status: Optional[ShipmentStatus] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    pickup_pin: Optional[str] = None
