import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from marketplace.config import settings
from marketplace.dependencies.services import get_payment_service
from marketplace.schemas.payment_schemas import (
    CreatePaymentRequest,
    PaymentRead,
    PaymentSummary,
    VerifyPaymentRequest,
)
from marketplace.services.payment_service import PaymentService
from marketplace.utils.token import CurrentUser, get_current_user

router = APIRouter()


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(default=None)):
    expected = settings.PAYMENT_WEBHOOK_SECRET
    if not expected:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook secret")


@router.post("", response_model=PaymentSummary, status_code=status.HTTP_201_CREATED)
def create_payment(
    data: CreatePaymentRequest,
    payments: PaymentService = Depends(get_payment_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return payments.create_payment(
        order_id=data.order_id,
        user_id=current_user.id,
        amount=data.amount,
        method=data.method.value,
        currency=data.currency,
    )


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment(
    payment_id: int,
    payments: PaymentService = Depends(get_payment_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return payments.get_payment(payment_id, current_user.id)


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentRead,
    dependencies=[Depends(verify_webhook_secret)],
)
def verify_payment(
    payment_id: int,
    data: VerifyPaymentRequest,
    payments: PaymentService = Depends(get_payment_service),
):
    """Provider callback. Safe to deliver more than once."""
    return payments.update_payment_status(
        payment_id,
        data.status.value,
        external_reference=data.transaction_ref,
        error_message=data.error_message,
    )
