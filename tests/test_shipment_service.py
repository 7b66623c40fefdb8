from types import SimpleNamespace

import pytest

from marketplace.constants.order_status import ShipmentStatus
from marketplace.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from marketplace.utils.token import CurrentUser
from tests.conftest import OTHER_USER_ID, USER_ID, VENDOR_A, VENDOR_B


@pytest.fixture
def shipments(checkout_service, cart, address):
    _, shipments = checkout_service.checkout(
        USER_ID,
        [
            SimpleNamespace(vendor_id=VENDOR_A, address_id=address.id, notes=None),
            SimpleNamespace(vendor_id=VENDOR_B, address_id=address.id, notes=None),
        ],
    )
    return {s.vendor_id: s for s in shipments}


class TestShipmentTracking:
    def test_ship_then_deliver(self, shipment_service, shipments):
        shipment = shipments[VENDOR_A]

        shipped = shipment_service.update_shipment(
            shipment.id, status="SHIPPED", carrier="Gozem", tracking_number="GZ-1029"
        )
        assert shipped.status == ShipmentStatus.SHIPPED.value
        assert shipped.carrier == "Gozem"
        assert shipped.shipped_at is not None
        assert shipped.delivered_at is None

        delivered = shipment_service.update_shipment(shipment.id, status="DELIVERED")
        assert delivered.status == ShipmentStatus.DELIVERED.value
        assert delivered.delivered_at is not None
        assert delivered.tracking_number == "GZ-1029"

    def test_tracking_details_without_status_change(self, shipment_service, shipments):
        updated = shipment_service.update_shipment(shipments[VENDOR_B].id, pickup_pin="4821")

        assert updated.status == ShipmentStatus.CREATED.value
        assert updated.pickup_pin == "4821"

    def test_cannot_skip_shipping(self, shipment_service, shipments):
        with pytest.raises(InvalidStateError) as exc:
            shipment_service.update_shipment(shipments[VENDOR_A].id, status="DELIVERED")

        assert exc.value.current == ShipmentStatus.CREATED.value

    def test_delivered_is_final(self, shipment_service, shipments):
        shipment_id = shipments[VENDOR_A].id
        shipment_service.update_shipment(shipment_id, status="SHIPPED")
        shipment_service.update_shipment(shipment_id, status="DELIVERED")

        with pytest.raises(InvalidStateError):
            shipment_service.update_shipment(shipment_id, status="CANCELLED")

    def test_unknown_status(self, shipment_service, shipments):
        with pytest.raises(ValidationError):
            shipment_service.update_shipment(shipments[VENDOR_A].id, status="LOST")

    def test_unknown_shipment(self, shipment_service):
        with pytest.raises(NotFoundError):
            shipment_service.update_shipment(404, status="SHIPPED")


class TestShipmentReads:
    def test_owner_and_admin_can_read(self, shipment_service, shipments, admin):
        shipment_id = shipments[VENDOR_A].id

        assert shipment_service.get_shipment(shipment_id, CurrentUser(id=USER_ID)).id == shipment_id
        assert shipment_service.get_shipment(shipment_id, admin).id == shipment_id

    def test_other_user_cannot_read(self, shipment_service, shipments):
        with pytest.raises(ForbiddenError):
            shipment_service.get_shipment(shipments[VENDOR_A].id, CurrentUser(id=OTHER_USER_ID))
