from fastapi import APIRouter, Depends, status

from marketplace.dependencies.services import get_checkout_service
from marketplace.schemas.checkout_schemas import CheckoutRequest, CheckoutResponse
from marketplace.services.checkout_service import CheckoutService
from marketplace.utils.token import CurrentUser, get_current_user

router = APIRouter()


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
def checkout_cart(
    data: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Convert the active cart into an order with one shipment per vendor.
    The cart stays active if anything fails, so the user can adjust and retry.
    """
    order, shipments = checkout.checkout(current_user.id, data.vendor_shipping)
    return {"order": order, "shipments": shipments}
