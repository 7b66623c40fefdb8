from marketplace.gateway.fake_adapter import FakePaymentGateway
from marketplace.gateway.port import PaymentGateway, PaymentGatewayError

__all__ = [
    "FakePaymentGateway",
    "PaymentGateway",
    "PaymentGatewayError",
]
