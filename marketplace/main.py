import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from marketplace.config import settings
from marketplace.database import create_db_and_tables, engine
from marketplace.errors import MarketplaceError
from marketplace.gateway import FakePaymentGateway
from marketplace.notifications import (
    LoggingNotificationSender,
    NotificationDelivery,
    WebhookNotificationSender,
)
from marketplace.routes import admin, checkout, health, orders, payments, shipments

logger = logging.getLogger(__name__)


def build_notification_delivery() -> NotificationDelivery:
    if settings.NOTIFICATION_WEBHOOK_URL:
        sender = WebhookNotificationSender(settings.NOTIFICATION_WEBHOOK_URL)
    else:
        sender = LoggingNotificationSender()

    return NotificationDelivery(
        sender,
        session_factory=lambda: Session(engine),
        max_retries=settings.NOTIFICATION_MAX_RETRIES,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.LOG_LEVEL)

    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()

    yield


app = FastAPI(title="Marketplace Order API", lifespan=lifespan)
app.state.notification_delivery = build_notification_delivery()
# no live provider is wired in yet; swap the adapter here
app.state.payment_gateway = FakePaymentGateway()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


app.include_router(orders.router, prefix="/orders", tags=["Orders"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(shipments.router, prefix="/shipments", tags=["Shipments"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(admin.router, prefix="/admin", tags=["Admin Endpoints"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "order_endpoints": [
            "/orders", "/orders/{order_id}", "/orders/{order_id}/events"
        ],
        "checkout_endpoints": ["/checkout"],
        "shipment_endpoints": ["/shipments/{shipment_id}"],
        "payment_endpoints": [
            "/payments", "/payments/{payment_id}", "/payments/{payment_id}/verify"
        ],
        "admin_endpoints": [
            "/admin/payments/{payment_id}/refund", "/admin/shipments/{shipment_id}"
        ],
        "health": ["/health/check"],
    }
