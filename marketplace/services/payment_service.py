"""
Payment reconciler.

Payments are created PENDING against a PENDING order, then settled by provider
callbacks. Callbacks may arrive more than once or concurrently: the PENDING ->
terminal move is a guarded UPDATE, and only the request that wins it applies
the order transition and queues the customer notification. A capture that
arrives for an order it can no longer settle (cancelled, or paid by another
attempt) is kept COMPLETED and refunded straight away.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from marketplace.config import Settings, settings as default_settings
from marketplace.constants.order_status import (
    TERMINAL_PAYMENT_STATUSES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketplace.gateway import PaymentGateway
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.notifications import NotificationDispatcher, NotificationKind
from marketplace.services.order_event_service import log_order_event
from marketplace.services.order_service import transition_order_status
from marketplace.services.refund_service import apply_refund, notify_refund, refund_key

logger = logging.getLogger(__name__)

CALLBACK_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED}


def _to_amount(value) -> Decimal:
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value}", amount=str(value))


class PaymentService:
    def __init__(
        self,
        session: Session,
        dispatcher: NotificationDispatcher,
        gateway: PaymentGateway,
        config: Settings = default_settings,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.gateway = gateway
        self.config = config

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_payment(
        self,
        order_id: int,
        user_id: int,
        amount,
        method: str,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        order = self.session.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found", order_id=order_id)

        if order.user_id != user_id:
            raise ForbiddenError("You do not own this order", order_id=order_id)

        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                "order",
                order.status,
                OrderStatus.PENDING.value,
                f"Cannot pay for order in status: {order.status}",
            )

        try:
            method = PaymentMethod(method).value
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {method}", method=method)

        amount = _to_amount(amount)
        if amount != _to_amount(order.total):
            raise ValidationError(
                "Payment amount does not match order total",
                amount=str(amount),
                order_total=str(order.total),
            )

        if self.config.MAX_PAYMENT_ATTEMPTS:
            attempts = self.session.exec(
                select(func.count()).select_from(Payment).where(Payment.order_id == order.id)
            ).one()
            if attempts >= self.config.MAX_PAYMENT_ATTEMPTS:
                raise ValidationError(
                    f"Order {order.id} reached the limit of "
                    f"{self.config.MAX_PAYMENT_ATTEMPTS} payment attempts",
                    attempts=attempts,
                )

        payment = Payment(
            order_id=order.id,
            amount=amount,
            currency=(currency or self.config.DEFAULT_CURRENCY).upper(),
            method=method,
            status=PaymentStatus.PENDING.value,
        )
        try:
            self.session.add(payment)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(payment)

        logger.info(
            f"Payment created: {payment.id} for order {order.id} ({payment.amount} {payment.currency})"
        )

        # the payment stays PENDING if the provider is down; the callback or a retry settles it
        try:
            payment.external_reference = self.gateway.initiate(payment)
            payment.updated_at = datetime.utcnow()
            self.session.add(payment)
            self.session.commit()
            self.session.refresh(payment)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Payment provider error for payment {payment.id}: {e}")

        return {
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "status": payment.status,
            "amount": payment.amount,
            "currency": payment.currency,
            "method": payment.method,
            "external_reference": payment.external_reference,
            "expires_at": payment.created_at + timedelta(hours=self.config.PAYMENT_EXPIRY_HOURS),
        }

    # ------------------------------------------------------------------
    # provider callback
    # ------------------------------------------------------------------

    def update_payment_status(
        self,
        payment_id: int,
        status: str,
        external_reference: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Payment:
        try:
            target = PaymentStatus(status)
        except ValueError:
            target = None
        if target not in CALLBACK_STATUSES:
            raise ValidationError(
                f"Callback status must be COMPLETED or FAILED, got {status}",
                status=str(status),
            )

        payment = self.session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", payment_id=payment_id)

        if payment.status in TERMINAL_PAYMENT_STATUSES:
            logger.warning(f"Payment {payment_id} already in final state: {payment.status}")
            return payment

        order = self.session.get(Order, payment.order_id)

        try:
            if not self._claim(payment, target, external_reference, error_message):
                # a concurrent delivery of the callback settled it first
                self.session.rollback()
                self.session.refresh(payment)
                logger.warning(f"Payment {payment_id} settled concurrently: {payment.status}")
                return payment

            unmatched = False
            if target == PaymentStatus.COMPLETED:
                if not transition_order_status(
                    self.session, order.id, OrderStatus.PENDING, OrderStatus.PROCESSING
                ):
                    # cancelled, or already paid by another attempt; the money is
                    # captured regardless, so keep COMPLETED and refund it below
                    unmatched = True
                    self.session.refresh(order)
                    error_message = (
                        f"Order {order.id} is {order.status}; payment captured without settling it"
                    )
                    self.session.execute(
                        update(Payment)
                        .where(Payment.id == payment.id)
                        .values(error_message=error_message)
                    )
                    logger.warning(
                        f"Payment {payment_id} completed for non-pending order {order.id}; refunding it"
                    )

            log_order_event(
                self.session,
                order.id,
                f"payment_{target.value.lower()}",
                "Payment completed" if target == PaymentStatus.COMPLETED else "Payment failed",
                created_by="provider",
                meta={
                    "payment_id": payment.id,
                    "external_reference": external_reference,
                    "error_message": error_message,
                    "settled_order": target == PaymentStatus.COMPLETED and not unmatched,
                },
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)

        if unmatched:
            return self._refund_unmatched(payment, order)

        if target == PaymentStatus.COMPLETED:
            logger.info(f"Payment {payment_id} completed. Order {order.id} processing started.")
            self.dispatcher.enqueue(
                NotificationKind.PAYMENT_SUCCESS,
                order.user_id,
                {
                    "order_id": order.id,
                    "amount": str(payment.amount),
                    "currency": payment.currency,
                    "payment_method": payment.method,
                    "transaction_ref": payment.external_reference,
                },
                related_id=payment.id,
            )
        else:
            logger.error(f"Payment {payment_id} failed: {payment.error_message}")
            self.dispatcher.enqueue(
                NotificationKind.PAYMENT_FAILURE,
                order.user_id,
                {
                    "order_id": order.id,
                    "amount": str(payment.amount),
                    "currency": payment.currency,
                    "error_message": payment.error_message,
                },
                related_id=payment.id,
            )

        return payment

    def _refund_unmatched(self, payment: Payment, order: Order) -> Payment:
        """
        Give back a capture that arrived for an order it can no longer settle.

        If the provider refuses, the payment stays COMPLETED with its error
        message and an admin refund can retry it later.
        """
        try:
            refund_reference = self.gateway.refund(payment, refund_key(payment))
        except Exception as e:
            logger.error(
                f"Automatic refund of payment {payment.id} failed, left COMPLETED for an admin refund: {e}"
            )
            return payment

        try:
            order = apply_refund(
                self.session,
                payment,
                refund_reference,
                created_by="system",
                label="Unmatched payment refunded automatically",
            )
            self.session.commit()
        except InvalidStateError:
            # an admin refunded it in the meantime
            self.session.rollback()
            self.session.refresh(payment)
            return payment
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)
        logger.info(f"Unmatched payment {payment.id} refunded ({refund_reference})")
        notify_refund(self.dispatcher, order, payment, refund_reference)
        return payment

    def _claim(self, payment, target, external_reference, error_message) -> bool:
        values = {"status": target.value, "updated_at": datetime.utcnow()}
        if external_reference:
            values["external_reference"] = external_reference
        if error_message:
            values["error_message"] = error_message

        result = self.session.execute(
            update(Payment)
            .where(Payment.id == payment.id)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .values(**values)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: int, user_id: int) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", payment_id=payment_id)

        order = self.session.get(Order, payment.order_id)
        if not order or order.user_id != user_id:
            raise ForbiddenError("You do not have access to this payment", payment_id=payment_id)

        return payment
