from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Frequency = Literal["daily", "weekly", "monthly", "yearly"]
Currency = Literal["USD", "INR"]
Category = Literal["Streaming", "Music", "Video", "Gaming", "Other"]
Status = Literal["active", "cancelled", "expired"]


class SubscriptionCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    price: float = Field(ge=0)
    currency: Currency = "USD"
    frequency: Frequency
    category: Category
    payment_method: str = Field(min_length=1)
    start_date: datetime
    renewal_date: Optional[datetime] = None


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    frequency: Optional[Frequency] = None
    category: Optional[Category] = None
    payment_method: Optional[str] = None
    status: Optional[Status] = None
    start_date: Optional[datetime] = None
    renewal_date: Optional[datetime] = None
