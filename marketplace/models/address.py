from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

class Address(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    label: str
    line1: str
    city: str
    country: str = Field(default="TG")
    phone_number: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
