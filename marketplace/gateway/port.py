"""Payment gateway port (abstract interface).

The reconciler only needs two capabilities from a provider: start a payment
and refund a settled one. Card and mobile-money networks plug in behind this
interface; nothing in the services knows their wire protocol.
"""

from abc import ABC, abstractmethod

from marketplace.models.payment import Payment


class PaymentGatewayError(Exception):
    """Raised by adapters when the provider rejects or cannot be reached."""


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def initiate(self, payment: Payment) -> str:
        """Start the payment with the provider and return its reference."""
        ...

    @abstractmethod
    def refund(self, payment: Payment, idempotency_key: str) -> str:
        """
        Refund a completed payment and return the provider refund reference.

        Repeated calls with the same ``idempotency_key`` must not refund twice;
        the provider answers with the reference of the first refund.
        """
        ...
