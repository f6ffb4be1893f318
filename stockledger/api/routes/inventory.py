"""Inventory routes."""

import csv
import io
from typing import List, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import RequireAdmin, RequireStaff
from stockledger.core.responses import paginated_response, service_error_response
from stockledger.db.session import DbSession
from stockledger.models.stock import InventoryItem
from stockledger.schemas.inventory import (
    InventoryItemResponse,
    ReorderUpdateRequest,
    StockStatusFilter,
)
from stockledger.services.exceptions import StockServiceError
from stockledger.services.inventory_service import InventoryService

router = APIRouter()

EXPORT_HEADERS = [
    "Product",
    "SKU",
    "Warehouse",
    "OnHand",
    "Reserved",
    "Available",
    "ReorderPoint",
    "ReorderQty",
    "UpdatedAt",
]


def create_csv_export(items: List[InventoryItem]) -> io.BytesIO:
    """Render inventory rows as a UTF-8 CSV file with a BOM for spreadsheet apps."""
    text_output = io.StringIO()
    writer = csv.writer(text_output, delimiter=",", quotechar='"', quoting=csv.QUOTE_MINIMAL)
    writer.writerow(EXPORT_HEADERS)
    for item in items:
        writer.writerow([
            item.product.name,
            item.product.sku or "",
            f"{item.warehouse.code} - {item.warehouse.name}",
            item.on_hand_qty,
            item.reserved_qty,
            item.available_qty,
            item.reorder_point_qty,
            item.reorder_qty,
            item.updated_at.isoformat() if item.updated_at else "",
        ])
    output = io.BytesIO()
    output.write(b"\xef\xbb\xbf")
    output.write(text_output.getvalue().encode("utf-8"))
    output.seek(0)
    return output


@router.get("")
@limiter.limit("60/minute")
def list_inventory(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    warehouse_id: Optional[int] = Query(None, alias="warehouseId"),
    q: Optional[str] = Query(None, max_length=100),
    stock_status: StockStatusFilter = Query(StockStatusFilter.ALL, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100, alias="pageSize"),
):
    """List inventory rows with product and warehouse labels (paginated)."""
    items, total = InventoryService(db).list_inventory(
        warehouse_id=warehouse_id,
        q=q,
        status=stock_status,
        page=page,
        page_size=page_size,
    )
    return paginated_response(
        "items",
        [InventoryItemResponse.from_item(item).to_json() for item in items],
        total,
        page,
        page_size,
    )


@router.get("/export")
@limiter.limit("10/minute")
def export_inventory(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    warehouse_id: Optional[int] = Query(None, alias="warehouseId"),
    q: Optional[str] = Query(None, max_length=100),
    stock_status: StockStatusFilter = Query(StockStatusFilter.ALL, alias="status"),
):
    """Download the filtered inventory as CSV (at most 5000 rows)."""
    items = InventoryService(db).export_inventory(warehouse_id=warehouse_id, q=q, status=stock_status)
    return StreamingResponse(
        create_csv_export(items),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="inventory.csv"'},
    )


@router.post("/reorder")
@limiter.limit("30/minute")
def update_reorder_settings(
    request: Request,
    body: ReorderUpdateRequest,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Bulk update reorder point and reorder quantity. All or nothing."""
    try:
        InventoryService(db, current_user.user_id).update_reorder_settings(body.items)
    except StockServiceError as e:
        return service_error_response(e)
    return {"ok": True}
