from fastapi import APIRouter, Depends

from marketplace.dependencies.services import get_shipment_service
from marketplace.schemas.shipment_schemas import ShipmentRead
from marketplace.services.shipment_service import ShipmentService
from marketplace.utils.token import CurrentUser, get_current_user

router = APIRouter()


@router.get("/{shipment_id}", response_model=ShipmentRead)
def get_shipment(
    shipment_id: int,
    shipments: ShipmentService = Depends(get_shipment_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    return shipments.get_shipment(shipment_id, current_user)
