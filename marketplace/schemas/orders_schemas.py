from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class OrderLineIn(BaseModel):
    item_id: int
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    items: List[OrderLineIn]


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: int
    vendor_id: int
    title: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    status: str
    total: Decimal
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead]


class OrderListResponse(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    limit: int
    has_more: bool
    results: List[OrderRead]


class OrderEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_type: str
    label: str
    meta: Optional[dict] = None
    created_by: str
    created_at: datetime


class CancelOrderResponse(BaseModel):
    message: str
    order: OrderRead
