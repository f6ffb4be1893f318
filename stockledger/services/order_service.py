"""Order service - status workflow and the stock actions it triggers.

Status flow:
    DRAFT -> PENDING_CONFIRMATION -> CONFIRMED -> PACKING -> SHIPPED
          -> DELIVERED -> RETURN_REQUESTED -> RETURNED
with CANCELED/FAILED exits before shipment.

The status change is committed first. The stock action then runs in its own
transaction; its failures are logged and returned to the caller instead of
undoing the status change.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from stockledger.models.order import Order, OrderStatus, OrderStatusHistory
from stockledger.services.exceptions import DocumentStateError, NotFoundError
from stockledger.services.order_stock_service import (
    OrderLineItem,
    OrderStockService,
    StockAction,
    StockActionResult,
)
from stockledger.services.warehouse_service import ensure_default_warehouse

logger = logging.getLogger(__name__)

S = OrderStatus

ORDER_STATUS_FLOW: Dict[OrderStatus, List[OrderStatus]] = {
    S.DRAFT: [S.PENDING_CONFIRMATION, S.CANCELED],
    S.PENDING_CONFIRMATION: [S.CONFIRMED, S.CANCELED, S.FAILED],
    S.CONFIRMED: [S.PACKING, S.CANCELED, S.FAILED],
    S.PACKING: [S.SHIPPED, S.CANCELED, S.FAILED],
    S.SHIPPED: [S.DELIVERED, S.RETURN_REQUESTED],
    S.DELIVERED: [S.RETURN_REQUESTED],
    S.RETURN_REQUESTED: [S.RETURNED, S.DELIVERED],
    S.RETURNED: [],
    S.CANCELED: [],
    S.FAILED: [],
}


def is_allowed_transition(current: OrderStatus, new: OrderStatus) -> bool:
    if current == new:
        return True
    return new in ORDER_STATUS_FLOW.get(current, [])


def stock_action_for_transition(current: OrderStatus, new: OrderStatus) -> Optional[StockAction]:
    """Stock action implied by moving an order from ``current`` to ``new``."""
    if current == new:
        return None
    if new == S.CONFIRMED:
        return StockAction.RESERVE
    if new == S.SHIPPED:
        return StockAction.COMMIT
    if new in (S.CANCELED, S.FAILED) and current in (S.CONFIRMED, S.PACKING):
        return StockAction.RELEASE
    if new == S.RETURNED and current in (S.SHIPPED, S.DELIVERED, S.RETURN_REQUESTED):
        return StockAction.RESTOCK
    return None


class OrderService:
    """Order status changes and manual stock release."""

    def __init__(self, db: Session, user_id: Optional[int] = None):
        self.db = db
        self.user_id = user_id

    def get_order(self, order_id: int, for_update: bool = False) -> Order:
        query = self.db.query(Order).options(selectinload(Order.items)).filter(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        order = query.first()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def update_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        note: Optional[str] = None,
        force: bool = False,
    ) -> Tuple[Order, Optional[StockActionResult]]:
        """Move an order to ``new_status`` and run the implied stock action.

        Raises:
            NotFoundError: the order does not exist.
            DocumentStateError: the transition is not allowed and ``force``
                is not set.
        """
        order = self.get_order(order_id, for_update=True)
        current = OrderStatus(order.status)
        new_status = OrderStatus(new_status)

        if current == new_status:
            return order, None
        if not force and not is_allowed_transition(current, new_status):
            allowed = [s.value for s in ORDER_STATUS_FLOW.get(current, [])]
            raise DocumentStateError(
                f"Cannot change order status from {current.value} to {new_status.value}",
                {"allowed": allowed},
            )

        order.status = new_status.value
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=current.value,
            to_status=new_status.value,
            note=note,
            actor_id=self.user_id,
        ))
        self.db.commit()
        logger.info(f"Order {order.order_number} status {current.value} -> {new_status.value}")

        action = stock_action_for_transition(current, new_status)
        if action is None:
            return order, None
        return order, self._run_stock_action(order, action)

    def release_stock(self, order_id: int) -> StockActionResult:
        """Release the stock reserved for every line of an order."""
        order = self.get_order(order_id)
        return self._run_stock_action(order, StockAction.RELEASE)

    def _run_stock_action(self, order: Order, action: StockAction) -> StockActionResult:
        warehouse_id = order.warehouse_id or ensure_default_warehouse(self.db).id
        items = [
            OrderLineItem(
                product_id=item.product_id,
                quantity=Decimal(item.quantity),
                product_name=item.product_name,
            )
            for item in order.items
        ]
        try:
            return OrderStockService(self.db).execute(
                order_id=order.id,
                action=action,
                items=items,
                warehouse_id=warehouse_id,
                created_by=self.user_id,
            )
        except SQLAlchemyError:
            logger.error(f"{action.value} for order {order.id} failed", exc_info=True)
            return StockActionResult(
                action=action,
                success=False,
                errors=[f"Database error while applying {action.value}"],
            )
