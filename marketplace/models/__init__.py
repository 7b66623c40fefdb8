from marketplace.models.item import Item
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.payment import Payment
from marketplace.models.shipment import Shipment
from marketplace.models.cart import Cart, CartItem
from marketplace.models.address import Address
from marketplace.models.order_event import OrderEvent
from marketplace.models.notifications import Notification, NotificationStatus

# add ALL models here
