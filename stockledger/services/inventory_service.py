"""Inventory service - stock overview, listing and reorder settings."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from stockledger.models.product import Product
from stockledger.models.stock import InventoryItem, StockMovement
from stockledger.schemas.inventory import ReorderItem, StockStatusFilter
from stockledger.services.audit_service import log_inventory_audit
from stockledger.services.exceptions import NotFoundError
from stockledger.services.stock_ledger import ZERO, to_qty

logger = logging.getLogger(__name__)

EXPORT_ROW_LIMIT = 5000


class InventoryService:
    """Read-side queries over the ledger plus reorder administration."""

    def __init__(self, db: Session, user_id: Optional[int] = None):
        self.db = db
        self.user_id = user_id

    def get_overview(self) -> dict:
        """Totals across all inventory rows plus low/out-of-stock counts.

        Low stock means ``0 < available < reorder point``; out of stock
        means ``available <= 0``. Movements are counted from UTC midnight.
        """
        on_hand, reserved, available = self.db.query(
            func.coalesce(func.sum(InventoryItem.on_hand_qty), 0),
            func.coalesce(func.sum(InventoryItem.reserved_qty), 0),
            func.coalesce(func.sum(InventoryItem.available_qty), 0),
        ).one()

        low_stock = self.db.query(func.count(InventoryItem.id)).filter(
            InventoryItem.available_qty > 0,
            InventoryItem.available_qty < InventoryItem.reorder_point_qty,
        ).scalar()
        out_of_stock = self.db.query(func.count(InventoryItem.id)).filter(
            InventoryItem.available_qty <= 0
        ).scalar()

        midnight = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        movements_today = self.db.query(func.count(StockMovement.id)).filter(
            StockMovement.created_at >= midnight
        ).scalar()

        return {
            "totals": {
                "on_hand": to_qty(on_hand),
                "reserved": to_qty(reserved),
                "available": to_qty(available),
            },
            "low_stock": low_stock or 0,
            "out_of_stock": out_of_stock or 0,
            "movements_today": movements_today or 0,
        }

    def list_inventory(
        self,
        warehouse_id: Optional[int] = None,
        q: Optional[str] = None,
        status: StockStatusFilter = StockStatusFilter.ALL,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[InventoryItem], int]:
        """Return one page of inventory rows and the total count."""
        query = self._filtered_query(warehouse_id, q, status)
        total = query.count()
        items = (
            query.order_by(Product.name, InventoryItem.warehouse_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def export_inventory(
        self,
        warehouse_id: Optional[int] = None,
        q: Optional[str] = None,
        status: StockStatusFilter = StockStatusFilter.ALL,
        limit: int = EXPORT_ROW_LIMIT,
    ) -> List[InventoryItem]:
        """Inventory rows for a CSV export, most recently changed first."""
        return (
            self._filtered_query(warehouse_id, q, status)
            .order_by(InventoryItem.updated_at.desc(), InventoryItem.id.desc())
            .limit(limit)
            .all()
        )

    def _filtered_query(
        self,
        warehouse_id: Optional[int],
        q: Optional[str],
        status: StockStatusFilter,
    ):
        query = (
            self.db.query(InventoryItem)
            .join(Product, Product.id == InventoryItem.product_id)
            .options(joinedload(InventoryItem.product), joinedload(InventoryItem.warehouse))
        )
        if warehouse_id:
            query = query.filter(InventoryItem.warehouse_id == warehouse_id)
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

        if status == StockStatusFilter.IN_STOCK:
            query = query.filter(InventoryItem.available_qty > 0)
        elif status == StockStatusFilter.LOW_STOCK:
            query = query.filter(
                InventoryItem.available_qty > 0,
                InventoryItem.available_qty < InventoryItem.reorder_point_qty,
            )
        elif status == StockStatusFilter.OUT_OF_STOCK:
            query = query.filter(InventoryItem.available_qty <= 0)
        return query

    def update_reorder_settings(self, items: List[ReorderItem]) -> int:
        """Set reorder point and reorder quantity for several inventory rows.

        All-or-nothing: an unknown id raises NotFoundError before anything
        changes. Returns the number of rows updated.
        """
        ids = [item.inventory_item_id for item in items]
        rows = {
            row.id: row
            for row in self.db.query(InventoryItem).filter(InventoryItem.id.in_(ids)).with_for_update().all()
        }
        missing = [item_id for item_id in ids if item_id not in rows]
        if missing:
            raise NotFoundError("Inventory item", missing[0])

        for item in items:
            row = rows[item.inventory_item_id]
            before = {
                "reorderPointQty": str(row.reorder_point_qty),
                "reorderQty": str(row.reorder_qty),
            }
            row.reorder_point_qty = to_qty(max(item.reorder_point_qty, ZERO))
            row.reorder_qty = to_qty(max(item.reorder_qty, ZERO))
            log_inventory_audit(
                self.db, "reorder_update", "inventory_item", row.id,
                before=before,
                after={
                    "reorderPointQty": str(row.reorder_point_qty),
                    "reorderQty": str(row.reorder_qty),
                },
                user_id=self.user_id,
            )

        self.db.commit()
        logger.info(f"Updated reorder settings for {len(items)} inventory item(s)")
        return len(items)
