"""Warehouse schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from stockledger.schemas.common import CamelModel


class WarehouseCreate(CamelModel):
    """Warehouse creation request."""

    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    is_default: bool = False


class WarehouseUpdate(CamelModel):
    """Partial warehouse update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    is_default: Optional[bool] = None
    active: Optional[bool] = None


class WarehouseResponse(CamelModel):
    id: int
    code: str
    name: str
    address: Optional[str] = None
    is_default: bool
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationCreate(CamelModel):
    """Warehouse location creation request."""

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field("Default", min_length=1, max_length=255)
    is_default: bool = False


class LocationResponse(CamelModel):
    id: int
    warehouse_id: int
    code: str
    name: str
    is_default: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
