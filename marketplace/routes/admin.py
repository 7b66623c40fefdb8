from fastapi import APIRouter, Depends

from marketplace.dependencies.admin import require_admin
from marketplace.dependencies.services import get_refund_service, get_shipment_service
from marketplace.schemas.payment_schemas import PaymentRead
from marketplace.schemas.shipment_schemas import ShipmentRead, UpdateShipmentRequest
from marketplace.services.refund_service import RefundService
from marketplace.services.shipment_service import ShipmentService
from marketplace.utils.token import CurrentUser

router = APIRouter()


@router.post("/payments/{payment_id}/refund", response_model=PaymentRead)
def refund_payment(
    payment_id: int,
    refunds: RefundService = Depends(get_refund_service),
    admin: CurrentUser = Depends(require_admin),
):
    return refunds.refund_payment(payment_id, admin)


@router.patch("/shipments/{shipment_id}", response_model=ShipmentRead)
def update_shipment(
    shipment_id: int,
    data: UpdateShipmentRequest,
    shipments: ShipmentService = Depends(get_shipment_service),
    _: CurrentUser = Depends(require_admin),
):
    return shipments.update_shipment(
        shipment_id,
        status=data.status.value if data.status else None,
        carrier=data.carrier,
        tracking_number=data.tracking_number,
        pickup_pin=data.pickup_pin,
    )
