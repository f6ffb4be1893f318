"""Order Stock Service - applies order lifecycle stock actions to the ledger.

Flow:
1. Order confirmed  -> RESERVE  (reserved += qty, needs available >= qty)
2. Order shipped    -> COMMIT   (on hand -= qty, reserved -= what the order holds)
3. Order cancelled  -> RELEASE  (reserved -= what the order holds)
4. Order returned   -> RESTOCK  (on hand += qty)

Each line is applied independently: a line that cannot be applied is
reported in ``skipped`` with a reason while the other lines still go through.
With ``atomic=True`` any blocking skip rolls back the whole action instead.

An order only ever touches its own reservation. What a line holds is the sum
of ``qty_change_reserved`` over the movements recorded under that line's key
prefix ``order:{id}:{warehouse}:{index}:{product}:``, so RELEASE and COMMIT
never consume stock reserved by another order.

RESERVE and RELEASE keys end in a sequence number, so an order that was
cancelled and confirmed again reserves again. COMMIT and RESTOCK happen once
per line.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockledger.models.document import DocumentStatus, ReferenceType, StockDocument
from stockledger.models.stock import InventoryItem, MovementType, StockMovement
from stockledger.services.exceptions import InsufficientStockError
from stockledger.services.stock_ledger import (
    ZERO,
    MovementPlan,
    apply_movement,
    find_inventory_item,
    generate_document_code,
    to_qty,
)

logger = logging.getLogger(__name__)


class StockAction(str, Enum):
    """Stock actions triggered by order status changes."""

    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    COMMIT = "COMMIT"
    RESTOCK = "RESTOCK"


ONE_SHOT_ACTIONS = (StockAction.COMMIT, StockAction.RESTOCK)


@dataclass
class OrderLineItem:
    product_id: Optional[int]
    quantity: Decimal
    product_name: str = ""


@dataclass
class AppliedItem:
    product_id: int
    product_name: str
    quantity: Decimal
    movement_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": str(self.quantity),
            "movementId": self.movement_id,
        }


@dataclass
class SkippedItem:
    product_id: Optional[int]
    product_name: str
    quantity: Decimal
    reason: str
    # Non-blocking skips (already applied, nothing to release) never abort atomic actions
    blocking: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": str(self.quantity),
            "reason": self.reason,
        }


@dataclass
class LineHistory:
    """Movements an order line already recorded in one warehouse."""

    reserved: Decimal = ZERO
    counts: Dict[str, int] = field(default_factory=dict)

    def count(self, action: StockAction) -> int:
        return self.counts.get(action.value, 0)


@dataclass
class StockActionResult:
    """Outcome of one stock action. Callers must check ``success`` and ``skipped``."""

    action: StockAction
    success: bool = True
    applied: List[AppliedItem] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    document_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "success": self.success,
            "applied": [item.to_dict() for item in self.applied],
            "skipped": [item.to_dict() for item in self.skipped],
            "errors": list(self.errors),
            "documentId": self.document_id,
        }


def line_key_prefix(order_id: int, warehouse_id: int, index: int, product_id: int) -> str:
    return f"order:{order_id}:{warehouse_id}:{index}:{product_id}:"


class OrderStockService:
    """Executes RESERVE/RELEASE/COMMIT/RESTOCK for an order's lines."""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        order_id: int,
        action: StockAction,
        items: List[OrderLineItem],
        warehouse_id: int,
        created_by: Optional[int] = None,
        atomic: bool = False,
    ) -> StockActionResult:
        """Apply ``action`` to every line inside a single transaction.

        Commits on success. Unexpected errors roll back and propagate.
        """
        result = StockActionResult(action=action)
        document: Optional[StockDocument] = None

        try:
            for index, item in enumerate(items):
                qty = to_qty(item.quantity)
                name = item.product_name or f"Product {item.product_id}"

                if not item.product_id:
                    result.skipped.append(SkippedItem(
                        None, name, qty, "Line is not linked to a product", blocking=False,
                    ))
                    continue
                if qty <= ZERO:
                    result.skipped.append(SkippedItem(item.product_id, name, qty, "Quantity must be positive"))
                    continue

                # Lock the row before reading the line's history
                inventory = find_inventory_item(self.db, item.product_id, warehouse_id)
                if inventory is None and action != StockAction.RESTOCK:
                    result.skipped.append(SkippedItem(
                        item.product_id, name, qty,
                        f"No inventory record for '{name}' in warehouse {warehouse_id}",
                        blocking=action != StockAction.RELEASE,
                    ))
                    continue

                prefix = line_key_prefix(order_id, warehouse_id, index, item.product_id)
                history = self._line_history(order_id, item.product_id, warehouse_id, prefix)
                changes, reason, blocking = self._plan_changes(action, inventory, history, qty, name, order_id)
                if changes is None:
                    result.skipped.append(SkippedItem(item.product_id, name, qty, reason, blocking=blocking))
                    continue

                if document is None:
                    document = self._create_document(order_id, action, warehouse_id, created_by)

                on_hand_change, reserved_change = changes
                plan = MovementPlan(
                    product_id=item.product_id,
                    warehouse_id=warehouse_id,
                    movement_type=MovementType(action.value),
                    idempotency_key=self._movement_key(prefix, action, history),
                    qty_change_on_hand=on_hand_change,
                    qty_change_reserved=reserved_change,
                    document_id=document.id,
                    reason=f"{action.value} for order {order_id}: {name} x{qty}",
                    ref_type="order",
                    ref_id=order_id,
                    created_by=created_by,
                )
                try:
                    movement, _ = apply_movement(self.db, plan)
                except InsufficientStockError as e:
                    result.skipped.append(SkippedItem(item.product_id, name, qty, e.message))
                    continue

                applied_qty = abs(reserved_change) if action == StockAction.RELEASE else qty
                result.applied.append(AppliedItem(item.product_id, name, applied_qty, movement.id))

            if document is not None and not result.applied:
                self.db.delete(document)
                document = None

            blocking_skips = [s for s in result.skipped if s.blocking]
            if atomic and blocking_skips:
                self.db.rollback()
                result.success = False
                result.errors = [s.reason for s in blocking_skips]
                result.applied = []
                result.document_id = None
                logger.warning(
                    f"Atomic {action.value} for order {order_id} aborted: {len(blocking_skips)} line(s) blocked"
                )
                return result

            result.errors = [s.reason for s in blocking_skips]
            result.document_id = document.id if document else None
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"{action.value} for order {order_id} failed", exc_info=True)
            raise

        log = logger.warning if result.skipped else logger.info
        log(
            f"{action.value} for order {order_id} in warehouse {warehouse_id}: "
            f"{len(result.applied)} applied, {len(result.skipped)} skipped"
        )
        return result

    def _line_history(self, order_id: int, product_id: int, warehouse_id: int, prefix: str) -> LineHistory:
        """Sum what this order line has reserved and count its movements per type."""
        rows = (
            self.db.query(
                StockMovement.movement_type,
                func.count(StockMovement.id),
                func.coalesce(func.sum(StockMovement.qty_change_reserved), 0),
            )
            .filter(
                StockMovement.ref_type == "order",
                StockMovement.ref_id == order_id,
                StockMovement.product_id == product_id,
                StockMovement.warehouse_id == warehouse_id,
                StockMovement.idempotency_key.startswith(prefix, autoescape=True),
            )
            .group_by(StockMovement.movement_type)
            .all()
        )
        history = LineHistory()
        for movement_type, count, reserved in rows:
            history.counts[movement_type] = count
            history.reserved += to_qty(reserved)
        return history

    @staticmethod
    def _movement_key(prefix: str, action: StockAction, history: LineHistory) -> str:
        if action in ONE_SHOT_ACTIONS:
            return f"{prefix}{action.value}"
        return f"{prefix}{action.value}:{history.count(action) + 1}"

    def _plan_changes(
        self,
        action: StockAction,
        inventory: Optional[InventoryItem],
        history: LineHistory,
        qty: Decimal,
        name: str,
        order_id: int,
    ) -> Tuple[Optional[Tuple[Decimal, Decimal]], str, bool]:
        """Work out (on_hand_change, reserved_change), or why the line is skipped
        and whether that skip blocks an atomic action."""
        if action in ONE_SHOT_ACTIONS and history.count(action):
            return None, f"{action.value} already applied", False

        if action == StockAction.RESTOCK:
            return (qty, ZERO), "", False

        if action == StockAction.RESERVE:
            if history.count(StockAction.COMMIT):
                return None, f"Order {order_id} already shipped '{name}'", False
            if history.reserved > ZERO:
                return None, f"{action.value} already applied", False
            if inventory.available_qty < qty:
                return None, (
                    f"Insufficient available stock for '{name}': "
                    f"need {qty}, available {inventory.available_qty}"
                ), True
            return (ZERO, qty), "", False

        held = max(min(history.reserved, inventory.reserved_qty), ZERO)

        if action == StockAction.RELEASE:
            release = min(qty, held)
            if release <= ZERO:
                return None, f"No reserved stock held by order {order_id} for '{name}'", False
            return (ZERO, -release), "", False

        # COMMIT: consume this order's reservation first, the rest must be available
        from_reserved = min(qty, held)
        unreserved = qty - from_reserved
        if inventory.on_hand_qty < qty or inventory.available_qty < unreserved:
            return None, (
                f"Insufficient stock to ship '{name}': need {qty}, "
                f"reserved by order {from_reserved}, available {inventory.available_qty}"
            ), True
        return (-qty, -from_reserved), "", False

    def _create_document(
        self,
        order_id: int,
        action: StockAction,
        warehouse_id: int,
        created_by: Optional[int],
    ) -> StockDocument:
        """Create the POSTED audit document grouping this action's movements."""
        document = StockDocument(
            code=generate_document_code(action.value[:3]),
            type=action.value,
            status=DocumentStatus.POSTED.value,
            warehouse_id=warehouse_id,
            reference_type=ReferenceType.ORDER.value,
            reference_id=order_id,
            note=f"Auto {action.value} for order {order_id}",
            created_by=created_by,
            posted_by=created_by,
            posted_at=datetime.now(timezone.utc),
        )
        self.db.add(document)
        self.db.flush()
        return document
