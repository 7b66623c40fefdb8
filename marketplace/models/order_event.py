from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Index, JSON


class OrderEvent(SQLModel, table=True):
    """
    One entry of an order's timeline.

    ``created_by`` names the actor: ``user:<id>``, ``admin:<id>``, ``provider``
    for payment callbacks, or ``system`` for automatic steps.
    """

    __tablename__ = "order_event"
    __table_args__ = (Index("ix_order_event_timeline", "order_id", "created_at"),)

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    order_id: int = Field(foreign_key="order.id")

    # order_placed, shipments_created, order_cancelled, payment_<status>, refund_processed
    event_type: str = Field(index=True, max_length=40)
    label: str
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_by: str = Field(default="system", max_length=64)
    created_at: datetime = Field(default_factory=datetime.utcnow)
