import asyncio
import os

# must be set before marketplace.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "test"

from decimal import Decimal

import pytest
from fastapi import BackgroundTasks
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from marketplace import models  # noqa: F401
from marketplace.database import get_session
from marketplace.gateway import FakePaymentGateway
from marketplace.main import app
from marketplace.models.address import Address
from marketplace.models.cart import Cart, CartItem
from marketplace.models.item import Item
from marketplace.notifications import (
    NotificationDelivery,
    NotificationDispatcher,
    NotificationSender,
)
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.order_service import OrderService
from marketplace.services.payment_service import PaymentService
from marketplace.services.refund_service import RefundService
from marketplace.services.shipment_service import ShipmentService
from marketplace.utils.token import CurrentUser, create_access_token

USER_ID = 1
OTHER_USER_ID = 2
ADMIN_ID = 99

VENDOR_A = 10
VENDOR_B = 20


class RecordingSender(NotificationSender):
    """Keeps every delivery; fails the first ``fail_times`` calls."""

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.attempts = 0
        self.sent = []

    def notify(self, kind, recipient_user_id, variables):
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise RuntimeError("delivery service unavailable")
        self.sent.append((kind, recipient_user_id, variables))

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def sender():
    return RecordingSender()


class ScheduledNotifications:
    """Runs the background tasks a request would run after its response."""

    def __init__(self, background_tasks: BackgroundTasks):
        self.background_tasks = background_tasks

    @property
    def pending(self):
        return len(self.background_tasks.tasks)

    def run(self):
        scheduled = list(self.background_tasks.tasks)
        self.background_tasks.tasks.clear()
        asyncio.run(BackgroundTasks(tasks=scheduled)())
        return len(scheduled)


@pytest.fixture
def delivery(engine, sender):
    return NotificationDelivery(
        sender,
        session_factory=lambda: Session(engine),
        max_retries=3,
        backoff_seconds=0,
    )


@pytest.fixture
def background_tasks():
    return BackgroundTasks()


@pytest.fixture
def dispatcher(background_tasks, delivery):
    return NotificationDispatcher(background_tasks, delivery)


@pytest.fixture
def notifications(background_tasks):
    return ScheduledNotifications(background_tasks)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def catalog(session):
    """Two vendors: A sells a lamp and a mug, B sells a basket."""
    items = {
        "lamp": Item(vendor_id=VENDOR_A, title="Lamp", price=Decimal("10.00"), stock=5),
        "mug": Item(vendor_id=VENDOR_A, title="Mug", price=Decimal("2.50"), stock=10),
        "basket": Item(vendor_id=VENDOR_B, title="Basket", price=Decimal("7.00"), stock=3),
    }
    for item in items.values():
        session.add(item)
    session.commit()
    for item in items.values():
        session.refresh(item)
    return items


@pytest.fixture
def address(session):
    address = Address(user_id=USER_ID, label="Home", line1="12 Rue du Port", city="Lome")
    session.add(address)
    session.commit()
    session.refresh(address)
    return address


@pytest.fixture
def cart(session, catalog):
    cart = Cart(user_id=USER_ID)
    session.add(cart)
    session.commit()
    session.refresh(cart)

    session.add(CartItem(cart_id=cart.id, item_id=catalog["lamp"].id, vendor_id=VENDOR_A, quantity=2))
    session.add(CartItem(cart_id=cart.id, item_id=catalog["basket"].id, vendor_id=VENDOR_B, quantity=1))
    session.commit()
    session.refresh(cart)
    return cart


@pytest.fixture
def admin():
    return CurrentUser(id=ADMIN_ID, role="admin")


@pytest.fixture
def order_service(session, dispatcher):
    return OrderService(session, dispatcher)


@pytest.fixture
def checkout_service(session, dispatcher):
    return CheckoutService(session, dispatcher)


@pytest.fixture
def payment_service(session, dispatcher, gateway):
    return PaymentService(session, dispatcher, gateway)


@pytest.fixture
def refund_service(session, dispatcher, gateway):
    return RefundService(session, dispatcher, gateway, restock_on_refund=False)


@pytest.fixture
def shipment_service(session):
    return ShipmentService(session)


@pytest.fixture
def client(engine, delivery, gateway):
    def override_get_session():
        with Session(engine) as session:
            yield session

    saved = app.state.notification_delivery, app.state.payment_gateway
    app.dependency_overrides[get_session] = override_get_session
    app.state.notification_delivery = delivery
    app.state.payment_gateway = gateway

    # no context manager: the lifespan would try to create the local tables
    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.notification_delivery, app.state.payment_gateway = saved


def auth_headers(user_id: int, role: str = "user"):
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    return auth_headers(USER_ID)


@pytest.fixture
def other_headers():
    return auth_headers(OTHER_USER_ID)


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID, role="admin")
