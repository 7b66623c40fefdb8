import logging
from collections import OrderedDict
from typing import List, Sequence, Tuple

from sqlmodel import Session

from marketplace.errors import ValidationError
from marketplace.models.order import Order
from marketplace.models.shipment import Shipment
from marketplace.notifications import NotificationDispatcher
from marketplace.services.cart_service import address_exists, close_cart, get_active_cart
from marketplace.services.order_event_service import log_order_event
from marketplace.services.order_service import OrderService

logger = logging.getLogger(__name__)


class CheckoutService:
    """Turns the user's active cart into one order plus one shipment per vendor."""

    def __init__(self, session: Session, dispatcher: NotificationDispatcher):
        self.session = session
        self.orders = OrderService(session, dispatcher)

    def checkout(self, user_id: int, vendor_shipping: Sequence) -> Tuple[Order, List[Shipment]]:
        """
        ``vendor_shipping`` entries expose ``vendor_id``, ``address_id`` and
        ``notes``. Every vendor in the cart needs exactly one entry.
        """
        cart = get_active_cart(self.session, user_id)
        if not cart or not cart.items:
            raise ValidationError("Your cart is empty.")

        lines_by_vendor: "OrderedDict[int, list]" = OrderedDict()
        for cart_item in cart.items:
            lines_by_vendor.setdefault(cart_item.vendor_id, []).append(cart_item)

        selections = {}
        for selection in vendor_shipping:
            if selection.vendor_id in selections:
                raise ValidationError(
                    f"Duplicate shipping selection for vendor {selection.vendor_id}",
                    vendor_id=selection.vendor_id,
                )
            selections[selection.vendor_id] = selection

        missing = [vendor_id for vendor_id in lines_by_vendor if vendor_id not in selections]
        if missing:
            raise ValidationError(
                f"Missing shipping selection for vendor(s): {', '.join(str(v) for v in missing)}",
                missing_vendor_ids=missing,
            )

        extra = [vendor_id for vendor_id in selections if vendor_id not in lines_by_vendor]
        if extra:
            logger.info(f"Ignoring shipping selections for vendors not in cart: {extra}")

        for vendor_id in lines_by_vendor:
            address_id = selections[vendor_id].address_id
            if not address_exists(self.session, address_id, user_id):
                raise ValidationError(
                    f"Address {address_id} not found for vendor {vendor_id}",
                    vendor_id=vendor_id,
                    address_id=address_id,
                )

        lines = [(ci.item_id, ci.quantity) for ci in cart.items]

        try:
            order = self.orders.reserve_order(user_id, lines)

            shipments = []
            for vendor_id in lines_by_vendor:
                selection = selections[vendor_id]
                shipment = Shipment(
                    order_id=order.id,
                    vendor_id=vendor_id,
                    address_id=selection.address_id,
                    notes=selection.notes,
                )
                self.session.add(shipment)
                shipments.append(shipment)

            close_cart(self.session, cart)

            log_order_event(
                self.session,
                order.id,
                "shipments_created",
                f"{len(shipments)} shipment(s) created",
                created_by=f"user:{user_id}",
                meta={"vendor_ids": list(lines_by_vendor.keys()), "cart_id": cart.id},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(order)
        for shipment in shipments:
            self.session.refresh(shipment)

        logger.info(
            f"Checkout of cart {cart.id} for user {user_id} created order {order.id} "
            f"with {len(shipments)} shipment(s)"
        )

        self.orders.notify_order_placed(order)
        return order, shipments
