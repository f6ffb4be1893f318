"""Exceptions raised by the warehouse services.

Routes translate these into HTTP responses; services never build responses.
"""

from decimal import Decimal
from typing import Any, Optional


class StockServiceError(Exception):
    """Base class for warehouse service errors."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(StockServiceError):
    """Raised when an order, document, warehouse or inventory row does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found", {"id": entity_id})


class ValidationFailedError(StockServiceError):
    """Raised for business-rule violations on otherwise well-formed input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = [{"field": field, "message": message}] if field else None
        super().__init__(message, details)


class DocumentStateError(StockServiceError):
    """Raised when a document or order is not in a state that allows the operation."""

    status_code = 409


class InsufficientStockError(StockServiceError):
    """Raised when a movement would make on-hand or available stock negative."""

    def __init__(self, product_id: int, warehouse_id: int, on_hand: Decimal, available: Decimal,
                 needed: Decimal):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.on_hand = on_hand
        self.available = available
        self.needed = needed
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}: "
            f"need {needed}, available {available}",
            {
                "productId": product_id,
                "warehouseId": warehouse_id,
                "onHand": str(on_hand),
                "available": str(available),
                "needed": str(needed),
            },
        )
