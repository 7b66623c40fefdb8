from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from marketplace.constants.order_status import PaymentMethod, PaymentStatus


class CreatePaymentRequest(BaseModel):
    order_id: int
    amount: Decimal = Field(gt=0)
    method: PaymentMethod
    currency: Optional[str] = None


class PaymentSummary(BaseModel):
    payment_id: int
    order_id: int
    status: str
    amount: Decimal
    currency: str
    method: str
    external_reference: Optional[str] = None
    expires_at: datetime


class VerifyPaymentRequest(BaseModel):
    status: PaymentStatus
    transaction_ref: Optional[str] = None
    error_message: Optional[str] = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    amount: Decimal
    currency: str
    method: str
    status: str
    external_reference: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
