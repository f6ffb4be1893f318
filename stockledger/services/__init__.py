# Services module

from stockledger.services.exceptions import (
    StockServiceError,
    NotFoundError,
    ValidationFailedError,
    DocumentStateError,
    InsufficientStockError,
)
from stockledger.services.order_stock_service import (
    OrderStockService,
    StockAction,
    StockActionResult,
    OrderLineItem,
)
from stockledger.services.stock_document_service import StockDocumentService
from stockledger.services.warehouse_service import (
    WarehouseService,
    ensure_default_warehouse,
    set_default,
)
from stockledger.services.inventory_service import InventoryService
from stockledger.services.order_service import OrderService

__all__ = [
    "StockServiceError",
    "NotFoundError",
    "ValidationFailedError",
    "DocumentStateError",
    "InsufficientStockError",
    "OrderStockService",
    "StockAction",
    "StockActionResult",
    "OrderLineItem",
    "StockDocumentService",
    "WarehouseService",
    "ensure_default_warehouse",
    "set_default",
    "InventoryService",
    "OrderService",
]
