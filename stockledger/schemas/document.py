"""Stock document schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import Field

from stockledger.models.document import ReferenceType
from stockledger.schemas.common import CamelModel


class ManualDocumentType(str, Enum):
    """Document types that can be authored by hand."""

    RECEIPT = "RECEIPT"
    ISSUE = "ISSUE"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"


class StockDocumentLineCreate(CamelModel):
    product_id: int
    # Signed for ADJUSTMENT, positive for every other type
    qty: Decimal = Field(..., max_digits=12, decimal_places=2)
    unit_cost: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    source_location_id: Optional[int] = None
    target_location_id: Optional[int] = None


class StockDocumentCreate(CamelModel):
    """Draft document creation request."""

    type: ManualDocumentType
    warehouse_id: Optional[int] = None
    target_warehouse_id: Optional[int] = None
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=1000)
    lines: List[StockDocumentLineCreate] = Field(..., min_length=1)


class ProductBrief(CamelModel):
    id: int
    name: str
    sku: Optional[str] = None


class StockDocumentLineResponse(CamelModel):
    id: int
    product_id: int
    qty: Decimal
    unit_cost: Optional[Decimal] = None
    source_location_id: Optional[int] = None
    target_location_id: Optional[int] = None
    product: Optional[ProductBrief] = None


class StockMovementResponse(CamelModel):
    id: int
    document_id: Optional[int] = None
    line_id: Optional[int] = None
    product_id: int
    warehouse_id: int
    location_id: Optional[int] = None
    movement_type: str
    qty_change_on_hand: Decimal
    qty_change_reserved: Decimal
    balance_on_hand_after: Decimal
    balance_reserved_after: Decimal
    reason: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    idempotency_key: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class StockDocumentResponse(CamelModel):
    """Document header as shown in lists."""

    id: int
    code: str
    type: str
    status: str
    warehouse_id: int
    target_warehouse_id: Optional[int] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    note: Optional[str] = None
    created_by: Optional[int] = None
    posted_by: Optional[int] = None
    posted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockDocumentDetail(StockDocumentResponse):
    """Document with its lines and the movements it produced."""

    lines: List[StockDocumentLineResponse] = []
    movements: List[StockMovementResponse] = []
