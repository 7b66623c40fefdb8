import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from marketplace.constants.order_status import SHIPMENT_TRANSITIONS, ShipmentStatus
from marketplace.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from marketplace.models.order import Order
from marketplace.models.shipment import Shipment
from marketplace.utils.token import CurrentUser

logger = logging.getLogger(__name__)


class ShipmentService:
    def __init__(self, session: Session):
        self.session = session

    def get_shipment(self, shipment_id: int, actor: CurrentUser) -> Shipment:
        shipment = self.session.get(Shipment, shipment_id)
        if not shipment:
            raise NotFoundError("Shipment not found", shipment_id=shipment_id)

        if not actor.is_admin:
            order = self.session.get(Order, shipment.order_id)
            if order.user_id != actor.id:
                raise ForbiddenError(
                    "You do not have access to this shipment", shipment_id=shipment_id
                )

        return shipment

    def update_shipment(
        self,
        shipment_id: int,
        status: Optional[str] = None,
        carrier: Optional[str] = None,
        tracking_number: Optional[str] = None,
        pickup_pin: Optional[str] = None,
    ) -> Shipment:
        shipment = self.session.get(Shipment, shipment_id)
        if not shipment:
            raise NotFoundError("Shipment not found", shipment_id=shipment_id)

        values = {"updated_at": datetime.utcnow()}
        if carrier is not None:
            values["carrier"] = carrier
        if tracking_number is not None:
            values["tracking_number"] = tracking_number
        if pickup_pin is not None:
            values["pickup_pin"] = pickup_pin

        expected = shipment.status
        statement = update(Shipment).where(Shipment.id == shipment.id)

        if status is not None and status != shipment.status:
            try:
                target = ShipmentStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown shipment status: {status}", status=status)

            current = ShipmentStatus(shipment.status)
            if target not in SHIPMENT_TRANSITIONS[current]:
                raise InvalidStateError(
                    "shipment",
                    current.value,
                    " or ".join(s.value for s in SHIPMENT_TRANSITIONS[current]) or "none",
                )

            values["status"] = target.value
            if target == ShipmentStatus.SHIPPED:
                values["shipped_at"] = datetime.utcnow()
            elif target == ShipmentStatus.DELIVERED:
                values["delivered_at"] = datetime.utcnow()
            statement = statement.where(Shipment.status == current.value)

        try:
            result = self.session.execute(statement.values(**values))
            if result.rowcount != 1:
                self.session.refresh(shipment)
                raise InvalidStateError("shipment", shipment.status, expected)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(shipment)
        logger.info(f"Shipment {shipment.id} updated: {values}")
        return shipment
