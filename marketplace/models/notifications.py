from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class NotificationStatus(str, Enum):
    sent = "sent"
    failed = "failed"


class Notification(SQLModel, table=True):
    """Delivery log; rows with status ``failed`` form the dead-letter log."""

    id: Optional[int] = Field(default=None, primary_key=True)

    kind: str = Field(index=True)  # order_confirmation / payment_success / ...
    recipient_user_id: int = Field(index=True)
    related_id: Optional[int] = None  # order_id or payment_id

    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    status: str = Field(default=NotificationStatus.sent.value, index=True)
    attempts: int = 0
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
