"""Stock Ledger - primitives shared by every stock-changing operation.

The ledger is the ``inventory_items`` table: one row per (product, warehouse)
holding on-hand, reserved and available quantities. Every change goes through
``apply_movement`` which:

1. Skips the change when a movement with the same idempotency key exists
2. Locks the inventory row (SELECT ... FOR UPDATE where supported)
3. Rejects balances that would go negative
4. Appends an immutable StockMovement with the resulting balances
5. Updates the inventory row and re-syncs the product's stock_quantity

Nothing here commits. Callers own the transaction, so a multi-row operation
either commits every movement or none of them.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockledger.models.product import Product
from stockledger.models.stock import InventoryItem, MovementType, StockMovement
from stockledger.services.exceptions import InsufficientStockError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
QTY_PLACES = Decimal("0.01")
CODE_ALPHABET = string.ascii_uppercase + string.digits


def to_qty(value) -> Decimal:
    """Normalize a quantity to the two decimal places stored by the ledger."""
    return Decimal(str(value)).quantize(QTY_PLACES)


@dataclass
class MovementPlan:
    """A ledger delta waiting to be applied."""

    product_id: int
    warehouse_id: int
    movement_type: MovementType
    idempotency_key: str
    qty_change_on_hand: Decimal = ZERO
    qty_change_reserved: Decimal = ZERO
    document_id: Optional[int] = None
    line_id: Optional[int] = None
    location_id: Optional[int] = None
    reason: Optional[str] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    created_by: Optional[int] = None


def find_inventory_item(
    db: Session,
    product_id: int,
    warehouse_id: int,
    for_update: bool = True,
) -> Optional[InventoryItem]:
    """Load the inventory row for a (product, warehouse) pair.

    With ``for_update`` the row stays locked until the surrounding transaction
    ends, which serializes concurrent requests touching the same stock.
    """
    query = db.query(InventoryItem).filter(
        InventoryItem.product_id == product_id,
        InventoryItem.warehouse_id == warehouse_id,
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_or_create_inventory_item(db: Session, product_id: int, warehouse_id: int) -> InventoryItem:
    """Return the inventory row, creating an empty one when missing."""
    item = find_inventory_item(db, product_id, warehouse_id)
    if item:
        return item

    item = InventoryItem(
        product_id=product_id,
        warehouse_id=warehouse_id,
        on_hand_qty=ZERO,
        reserved_qty=ZERO,
        available_qty=ZERO,
        reorder_point_qty=ZERO,
        reorder_qty=ZERO,
    )
    db.add(item)
    db.flush()
    return item


def movement_exists(db: Session, idempotency_key: str) -> Optional[StockMovement]:
    return db.query(StockMovement).filter(
        StockMovement.idempotency_key == idempotency_key
    ).first()


def apply_movement(
    db: Session,
    plan: MovementPlan,
    allow_negative: bool = False,
) -> Tuple[StockMovement, bool]:
    """Apply one planned delta to the ledger.

    Returns ``(movement, created)``; ``created`` is False when the idempotency
    key was already used and the ledger was left untouched.

    Raises:
        InsufficientStockError: if on-hand, reserved or available would drop
            below zero and ``allow_negative`` is not set. The ledger is not
            modified in that case.
    """
    existing = movement_exists(db, plan.idempotency_key)
    if existing:
        logger.debug(f"Movement {plan.idempotency_key} already applied, skipping")
        return existing, False

    item = get_or_create_inventory_item(db, plan.product_id, plan.warehouse_id)

    on_hand_change = to_qty(plan.qty_change_on_hand)
    reserved_change = to_qty(plan.qty_change_reserved)
    new_on_hand = item.on_hand_qty + on_hand_change
    new_reserved = item.reserved_qty + reserved_change
    new_available = new_on_hand - new_reserved

    if not allow_negative and (new_on_hand < ZERO or new_reserved < ZERO or new_available < ZERO):
        raise InsufficientStockError(
            product_id=plan.product_id,
            warehouse_id=plan.warehouse_id,
            on_hand=item.on_hand_qty,
            available=item.available_qty,
            needed=abs(on_hand_change) or abs(reserved_change),
        )

    movement = StockMovement(
        document_id=plan.document_id,
        line_id=plan.line_id,
        product_id=plan.product_id,
        warehouse_id=plan.warehouse_id,
        location_id=plan.location_id,
        movement_type=plan.movement_type.value,
        qty_change_on_hand=on_hand_change,
        qty_change_reserved=reserved_change,
        balance_on_hand_after=new_on_hand,
        balance_reserved_after=new_reserved,
        reason=plan.reason,
        ref_type=plan.ref_type,
        ref_id=plan.ref_id,
        idempotency_key=plan.idempotency_key,
        created_by=plan.created_by,
    )
    db.add(movement)

    item.on_hand_qty = new_on_hand
    item.reserved_qty = new_reserved
    item.available_qty = new_available
    db.flush()

    sync_product_stock(db, plan.product_id)
    return movement, True


def sync_product_stock(db: Session, product_id: int) -> None:
    """Set Product.stock_quantity to the available stock across all warehouses."""
    total = db.query(
        func.coalesce(func.sum(InventoryItem.available_qty), 0)
    ).filter(InventoryItem.product_id == product_id).scalar()

    product = db.get(Product, product_id)
    if product is not None:
        product.stock_quantity = to_qty(total)
        db.flush()


def generate_document_code(prefix: str) -> str:
    """Build a human-readable document code: PREFIX-YYYYMMDD-XXXXXX."""
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
    return f"{prefix}-{today}-{suffix}"
