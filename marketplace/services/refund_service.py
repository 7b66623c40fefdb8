import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from marketplace.config import settings
from marketplace.constants.order_status import OrderStatus, PaymentStatus
from marketplace.errors import ForbiddenError, InvalidStateError, NotFoundError, ProviderError
from marketplace.gateway import PaymentGateway
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.notifications import NotificationDispatcher, NotificationKind
from marketplace.services.inventory_service import restock_order_items
from marketplace.services.order_event_service import log_order_event
from marketplace.utils.token import CurrentUser

logger = logging.getLogger(__name__)


def refund_key(payment: Payment) -> str:
    """Provider idempotency key: one refund per payment, however many callers race."""
    return f"refund-payment-{payment.id}"


def apply_refund(
    session: Session,
    payment: Payment,
    refund_reference: str,
    created_by: str,
    label: str,
    restock: bool = False,
) -> Order:
    """
    Record a refund the provider already accepted. Caller commits.

    The order is cancelled only when no other COMPLETED payment still settles
    it, so refunding a duplicate capture never cancels a paid order.
    """
    claimed = session.execute(
        update(Payment)
        .where(Payment.id == payment.id)
        .where(Payment.status == PaymentStatus.COMPLETED.value)
        .values(status=PaymentStatus.REFUNDED.value, updated_at=datetime.utcnow())
    )
    if claimed.rowcount != 1:
        session.refresh(payment)
        raise InvalidStateError("payment", payment.status, PaymentStatus.COMPLETED.value)

    order = session.get(Order, payment.order_id)

    still_paid = session.exec(
        select(func.count())
        .select_from(Payment)
        .where(Payment.order_id == order.id)
        .where(Payment.status == PaymentStatus.COMPLETED.value)
    ).one()

    restocked = 0
    if not still_paid:
        cancelled = session.execute(
            update(Order)
            .where(Order.id == order.id)
            .where(Order.status != OrderStatus.CANCELLED.value)
            .values(status=OrderStatus.CANCELLED.value, updated_at=datetime.utcnow())
        )
        if restock and cancelled.rowcount == 1:
            restocked = restock_order_items(session, order.id)

    log_order_event(
        session,
        order.id,
        "refund_processed",
        label,
        created_by=created_by,
        meta={
            "payment_id": payment.id,
            "refund_reference": refund_reference,
            "amount": str(payment.amount),
            "items_restocked": restocked,
            "order_cancelled": not still_paid,
        },
    )
    return order


def notify_refund(
    dispatcher: NotificationDispatcher, order: Order, payment: Payment, refund_reference: str
) -> None:
    dispatcher.enqueue(
        NotificationKind.REFUND_PROCESSED,
        order.user_id,
        {
            "order_id": order.id,
            "refund_amount": str(payment.amount),
            "currency": payment.currency,
            "refund_reference": refund_reference,
            "refund_date": datetime.utcnow(),
        },
        related_id=payment.id,
    )


class RefundService:
    def __init__(
        self,
        session: Session,
        dispatcher: NotificationDispatcher,
        gateway: PaymentGateway,
        restock_on_refund: Optional[bool] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.gateway = gateway
        self.restock_on_refund = restock_on_refund

    def refund_payment(self, payment_id: int, actor: CurrentUser) -> Payment:
        """
        Refund a COMPLETED payment and cancel its order.

        The provider is called before anything local changes: if it raises,
        the payment stays COMPLETED and the refund can be retried. Concurrent
        refunds share one idempotency key, so the provider refunds once and
        only one of them wins the local status change.
        """
        if not actor.is_admin:
            raise ForbiddenError("Admin access required")

        payment = self.session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", payment_id=payment_id)

        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidStateError(
                "payment",
                payment.status,
                PaymentStatus.COMPLETED.value,
                f"Cannot refund payment in status: {payment.status}",
            )

        try:
            refund_reference = self.gateway.refund(payment, refund_key(payment))
        except Exception as e:
            logger.error(f"Refund failed for payment {payment_id}: {e}")
            raise ProviderError(
                "Refund failed. Please try again.", payment_id=payment_id
            ) from e

        restock = self.restock_on_refund
        if restock is None:
            restock = settings.RESTOCK_ON_REFUND

        try:
            order = apply_refund(
                self.session,
                payment,
                refund_reference,
                created_by=f"admin:{actor.id}",
                label="Payment refunded by admin",
                restock=restock,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)
        self.session.refresh(order)
        logger.info(f"Payment {payment_id} refunded successfully ({refund_reference})")

        notify_refund(self.dispatcher, order, payment, refund_reference)
        return payment
