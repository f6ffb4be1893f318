"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from stockledger.models.order import OrderStatus
from stockledger.schemas.common import CamelModel


class OrderStatusUpdate(CamelModel):
    """Order status change request."""

    status: OrderStatus
    note: Optional[str] = Field(None, max_length=1000)
    # Skip transition validation (admin correction)
    force: bool = False


class OrderResponse(CamelModel):
    id: int
    order_number: str
    status: str
    customer_email: Optional[str] = None
    warehouse_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
