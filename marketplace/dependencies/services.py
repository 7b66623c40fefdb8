"""Per-request wiring of services to the session, dispatcher and gateway."""

from fastapi import BackgroundTasks, Depends, Request
from sqlmodel import Session

from marketplace.config import settings
from marketplace.database import get_session
from marketplace.gateway import PaymentGateway
from marketplace.notifications import NotificationDispatcher
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.order_service import OrderService
from marketplace.services.payment_service import PaymentService
from marketplace.services.refund_service import RefundService
from marketplace.services.shipment_service import ShipmentService


def get_dispatcher(request: Request, background_tasks: BackgroundTasks) -> NotificationDispatcher:
    return NotificationDispatcher(background_tasks, request.app.state.notification_delivery)


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_order_service(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> OrderService:
    return OrderService(session, dispatcher)


def get_checkout_service(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> CheckoutService:
    return CheckoutService(session, dispatcher)


def get_payment_service(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PaymentService:
    return PaymentService(session, dispatcher, gateway, settings)


def get_refund_service(
    session: Session = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> RefundService:
    return RefundService(session, dispatcher, gateway)


def get_shipment_service(session: Session = Depends(get_session)) -> ShipmentService:
    return ShipmentService(session)
