"""SQLAlchemy models."""

from stockledger.models.user import User
from stockledger.models.product import Product
from stockledger.models.warehouse import Warehouse, WarehouseLocation
from stockledger.models.stock import InventoryItem, StockMovement, MovementType
from stockledger.models.document import (
    StockDocument,
    StockDocumentLine,
    DocumentStatus,
    ReferenceType,
)
from stockledger.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory
from stockledger.models.audit import InventoryAuditLog

__all__ = [
    "User",
    "Product",
    "Warehouse",
    "WarehouseLocation",
    "InventoryItem",
    "StockMovement",
    "MovementType",
    "StockDocument",
    "StockDocumentLine",
    "DocumentStatus",
    "ReferenceType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "InventoryAuditLog",
]
