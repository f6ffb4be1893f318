"""API routes."""

from fastapi import APIRouter

from stockledger.api.routes import inventory, orders, warehouse, warehouses

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(warehouse.router, prefix="/warehouse", tags=["warehouse"])
api_router.include_router(warehouses.router, prefix="/warehouses", tags=["warehouses"])
