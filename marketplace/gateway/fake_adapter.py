"""Configurable fake payment gateway for development and testing.

No external calls are made. Behaviour can be switched at runtime so tests can
exercise provider outages on initiation and refund independently.
"""

import logging
from uuid import uuid4

from marketplace.gateway.port import PaymentGateway, PaymentGatewayError
from marketplace.models.payment import Payment

logger = logging.getLogger(__name__)


class FakePaymentGateway(PaymentGateway):
    """Records every call and succeeds unless configured otherwise."""

    def __init__(self) -> None:
        self.initiate_should_succeed: bool = True
        self.refund_should_succeed: bool = True
        self.failure_reason: str = "Provider unavailable"
        self.calls: list[dict] = []
        self.refunds: dict[str, str] = {}

    def configure(
        self,
        initiate_should_succeed: bool = True,
        refund_should_succeed: bool = True,
        failure_reason: str = "Provider unavailable",
    ) -> None:
        self.initiate_should_succeed = initiate_should_succeed
        self.refund_should_succeed = refund_should_succeed
        self.failure_reason = failure_reason

    def initiate(self, payment: Payment) -> str:
        self.calls.append(
            {
                "method": "initiate",
                "payment_id": payment.id,
                "amount": payment.amount,
                "currency": payment.currency,
            }
        )
        if not self.initiate_should_succeed:
            raise PaymentGatewayError(self.failure_reason)

        reference = f"fake_txn_{uuid4().hex[:12]}"
        logger.info(f"Fake gateway initiated payment {payment.id}: {reference}")
        return reference

    def refund(self, payment: Payment, idempotency_key: str) -> str:
        self.calls.append(
            {
                "method": "refund",
                "payment_id": payment.id,
                "external_reference": payment.external_reference,
                "amount": payment.amount,
                "idempotency_key": idempotency_key,
            }
        )
        if not self.refund_should_succeed:
            raise PaymentGatewayError(self.failure_reason)

        if idempotency_key not in self.refunds:
            self.refunds[idempotency_key] = f"fake_ref_{uuid4().hex[:12]}"
        return self.refunds[idempotency_key]
