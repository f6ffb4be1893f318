"""Order stock routes."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import RequireStaff
from stockledger.core.responses import error_body, service_error_response
from stockledger.db.session import DbSession
from stockledger.schemas.order import OrderResponse, OrderStatusUpdate
from stockledger.services.exceptions import StockServiceError
from stockledger.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{order_id}/release-stock")
@limiter.limit("30/minute")
def release_order_stock(
    request: Request,
    order_id: int,
    db: DbSession,
    current_user: RequireStaff,
):
    """Release the stock reserved for an order in its warehouse."""
    try:
        result = OrderService(db, current_user.user_id).release_stock(order_id)
    except StockServiceError as e:
        return service_error_response(e)

    if not result.success:
        return JSONResponse(
            status_code=400,
            content=error_body("Failed to release stock", result.errors),
        )

    payload = result.to_dict()
    return {
        "message": "Stock released successfully",
        "applied": payload["applied"],
        "skipped": payload["skipped"],
    }


@router.patch("/{order_id}/status")
@limiter.limit("30/minute")
def update_order_status(
    request: Request,
    order_id: int,
    body: OrderStatusUpdate,
    db: DbSession,
    current_user: RequireStaff,
):
    """Change an order's status and run the stock action it implies.

    The status change stands even when the stock action skips lines; the
    outcome is returned in ``stockAction``.
    """
    try:
        order, result = OrderService(db, current_user.user_id).update_status(
            order_id, body.status, note=body.note, force=body.force,
        )
    except StockServiceError as e:
        return service_error_response(e)

    db.refresh(order)
    return {
        "order": OrderResponse.model_validate(order).to_json(),
        "stockAction": result.to_dict() if result else None,
    }
