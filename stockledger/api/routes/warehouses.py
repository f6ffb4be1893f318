"""Warehouse management routes."""

from fastapi import APIRouter, Query, Request, status

from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import RequireAdmin, RequireStaff
from stockledger.core.responses import service_error_response
from stockledger.db.session import DbSession
from stockledger.schemas.warehouse import (
    LocationCreate,
    LocationResponse,
    WarehouseCreate,
    WarehouseResponse,
    WarehouseUpdate,
)
from stockledger.services.exceptions import StockServiceError
from stockledger.services.warehouse_service import WarehouseService

router = APIRouter()


@router.get("")
@limiter.limit("60/minute")
def list_warehouses(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    include_inactive: bool = Query(False, alias="includeInactive"),
):
    """List warehouses, default first."""
    warehouses = WarehouseService(db).list_warehouses(include_inactive=include_inactive)
    return {"warehouses": [WarehouseResponse.model_validate(w).to_json() for w in warehouses]}


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_warehouse(
    request: Request,
    body: WarehouseCreate,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Create a warehouse. ``isDefault`` moves the default flag to it."""
    try:
        warehouse = WarehouseService(db, current_user.user_id).create_warehouse(
            code=body.code,
            name=body.name,
            address=body.address,
            is_default=body.is_default,
        )
    except StockServiceError as e:
        return service_error_response(e)
    return {"warehouse": WarehouseResponse.model_validate(warehouse).to_json()}


@router.patch("/{warehouse_id}")
@limiter.limit("30/minute")
def update_warehouse(
    request: Request,
    warehouse_id: int,
    body: WarehouseUpdate,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Update name, address, active flag or default flag of a warehouse."""
    try:
        warehouse = WarehouseService(db, current_user.user_id).update_warehouse(
            warehouse_id,
            name=body.name,
            address=body.address,
            is_default=body.is_default,
            active=body.active,
        )
    except StockServiceError as e:
        return service_error_response(e)
    return {"warehouse": WarehouseResponse.model_validate(warehouse).to_json()}


@router.get("/{warehouse_id}/locations")
@limiter.limit("60/minute")
def list_locations(
    request: Request,
    warehouse_id: int,
    db: DbSession,
    current_user: RequireAdmin,
):
    """List a warehouse's locations, default first."""
    try:
        locations = WarehouseService(db).list_locations(warehouse_id)
    except StockServiceError as e:
        return service_error_response(e)
    return {"locations": [LocationResponse.model_validate(loc).to_json() for loc in locations]}


@router.post("/{warehouse_id}/locations", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_location(
    request: Request,
    warehouse_id: int,
    body: LocationCreate,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Add a location to a warehouse."""
    try:
        location = WarehouseService(db, current_user.user_id).create_location(
            warehouse_id,
            code=body.code,
            name=body.name,
            is_default=body.is_default,
        )
    except StockServiceError as e:
        return service_error_response(e)
    return {"location": LocationResponse.model_validate(location).to_json()}
