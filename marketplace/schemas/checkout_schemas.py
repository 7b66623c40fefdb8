# marketplace/schemas/checkout_schemas.py
from pydantic import BaseModel
from typing import List, Optional

from marketplace.schemas.orders_schemas import OrderRead
from marketplace.schemas.shipment_schemas import ShipmentRead


class VendorShippingSelection(BaseModel):
    vendor_id: int
    address_id: int          # delivery address chosen for this vendor's parcel
    notes: Optional[str] = None


class CheckoutRequest(BaseModel):
    vendor_shipping: List[VendorShippingSelection]


class CheckoutResponse(BaseModel):
    order: OrderRead
    shipments: List[ShipmentRead]
