"""Inventory schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import Field

from stockledger.models.stock import InventoryItem
from stockledger.schemas.common import CamelModel


class StockStatusFilter(str, Enum):
    """Inventory list filter."""

    ALL = "all"
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class ReorderItem(CamelModel):
    inventory_item_id: int
    reorder_point_qty: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    reorder_qty: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class ReorderUpdateRequest(CamelModel):
    """Bulk update of reorder settings."""

    items: List[ReorderItem] = Field(..., min_length=1)


class InventoryItemResponse(CamelModel):
    """Inventory row with product and warehouse labels."""

    id: int
    product_id: int
    product_name: Optional[str] = None
    sku: Optional[str] = None
    warehouse_id: int
    warehouse_code: Optional[str] = None
    on_hand_qty: Decimal
    reserved_qty: Decimal
    available_qty: Decimal
    reorder_point_qty: Decimal
    reorder_qty: Decimal
    is_low_stock: bool
    updated_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: InventoryItem) -> "InventoryItemResponse":
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name if item.product else None,
            sku=item.product.sku if item.product else None,
            warehouse_id=item.warehouse_id,
            warehouse_code=item.warehouse.code if item.warehouse else None,
            on_hand_qty=item.on_hand_qty,
            reserved_qty=item.reserved_qty,
            available_qty=item.available_qty,
            reorder_point_qty=item.reorder_point_qty,
            reorder_qty=item.reorder_qty,
            is_low_stock=item.is_low_stock,
            updated_at=item.updated_at,
        )


class OverviewTotals(CamelModel):
    on_hand: Decimal
    reserved: Decimal
    available: Decimal


class WarehouseOverview(CamelModel):
    """Aggregate stock figures across all inventory rows."""

    totals: OverviewTotals
    low_stock: int
    out_of_stock: int
    movements_today: int
