"""Warehouse service - warehouses and default warehouse resolution.

Exactly one warehouse carries ``is_default``. Changing the default is a
two-step clear-then-set inside the caller's transaction, so a concurrent
reader never sees two defaults after commit.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.models.warehouse import Warehouse, WarehouseLocation
from stockledger.services.audit_service import log_inventory_audit
from stockledger.services.exceptions import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)


def _snapshot(warehouse: Warehouse) -> Dict[str, Any]:
    return {
        "code": warehouse.code,
        "name": warehouse.name,
        "address": warehouse.address,
        "isDefault": warehouse.is_default,
        "active": warehouse.active,
    }


def set_default(db: Session, warehouse: Warehouse) -> Warehouse:
    """Make ``warehouse`` the only default. Does not commit."""
    db.execute(
        update(Warehouse)
        .where(Warehouse.id != warehouse.id)
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    warehouse.is_default = True
    db.flush()
    return warehouse


def ensure_default_warehouse(db: Session) -> Warehouse:
    """Return the default warehouse, designating or creating one if needed.

    Resolution order: the flagged default, then the warehouse coded
    ``settings.default_warehouse_code``, then the lowest-id warehouse, then a
    newly created one. Does not commit.
    """
    defaults = (
        db.query(Warehouse)
        .filter(Warehouse.is_default.is_(True))
        .order_by(Warehouse.id)
        .all()
    )
    if len(defaults) == 1:
        return defaults[0]
    if defaults:
        # Stray flags from older data: keep the first one
        logger.warning(f"Found {len(defaults)} default warehouses, keeping {defaults[0].code}")
        return set_default(db, defaults[0])

    warehouse = (
        db.query(Warehouse).filter(Warehouse.code == settings.default_warehouse_code).first()
        or db.query(Warehouse).order_by(Warehouse.id).first()
    )
    if warehouse is None:
        warehouse = Warehouse(
            code=settings.default_warehouse_code,
            name=settings.default_warehouse_name,
            is_default=True,
            active=True,
        )
        db.add(warehouse)
        db.flush()
        logger.info(f"Created default warehouse {warehouse.code}")
        return warehouse

    logger.info(f"Designated warehouse {warehouse.code} as default")
    return set_default(db, warehouse)


class WarehouseService:
    """Create, update and list warehouses."""

    def __init__(self, db: Session, user_id: Optional[int] = None):
        self.db = db
        self.user_id = user_id

    def get(self, warehouse_id: int) -> Warehouse:
        warehouse = self.db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return warehouse

    def list_warehouses(self, include_inactive: bool = False) -> List[Warehouse]:
        query = self.db.query(Warehouse)
        if not include_inactive:
            query = query.filter(Warehouse.active.is_(True))
        return query.order_by(Warehouse.is_default.desc(), Warehouse.code).all()

    def create_warehouse(
        self,
        code: str,
        name: str,
        address: Optional[str] = None,
        is_default: bool = False,
    ) -> Warehouse:
        code = code.strip().upper()
        if self.db.query(Warehouse).filter(Warehouse.code == code).first():
            raise ValidationFailedError(f"Warehouse code '{code}' already exists", field="code")

        # The first warehouse always becomes the default
        has_any = self.db.query(Warehouse.id).first() is not None
        warehouse = Warehouse(code=code, name=name.strip(), address=address, is_default=False)
        self.db.add(warehouse)
        self.db.flush()
        if is_default or not has_any:
            set_default(self.db, warehouse)

        log_inventory_audit(
            self.db, "create", "warehouse", warehouse.id,
            after=_snapshot(warehouse), user_id=self.user_id,
        )
        self.db.commit()
        self.db.refresh(warehouse)
        logger.info(f"Warehouse {warehouse.code} created (default={warehouse.is_default})")
        return warehouse

    def update_warehouse(
        self,
        warehouse_id: int,
        name: Optional[str] = None,
        address: Optional[str] = None,
        is_default: Optional[bool] = None,
        active: Optional[bool] = None,
    ) -> Warehouse:
        """Apply a partial update. Only fields that are not None change."""
        warehouse = self.get(warehouse_id)
        before = _snapshot(warehouse)

        if is_default is False and warehouse.is_default:
            raise ValidationFailedError(
                "Cannot unset the default warehouse; mark another warehouse as default instead",
                field="isDefault",
            )
        will_be_active = warehouse.active if active is None else active
        if is_default and not will_be_active:
            raise ValidationFailedError("An inactive warehouse cannot be the default", field="isDefault")
        if active is False and warehouse.is_default:
            raise ValidationFailedError("Cannot deactivate the default warehouse", field="active")

        if name is not None:
            if not name.strip():
                raise ValidationFailedError("Name must not be empty", field="name")
            warehouse.name = name.strip()
        if address is not None:
            warehouse.address = address or None
        if active is not None:
            warehouse.active = active
        if is_default:
            set_default(self.db, warehouse)

        log_inventory_audit(
            self.db, "update", "warehouse", warehouse.id,
            before=before, after=_snapshot(warehouse), user_id=self.user_id,
        )
        self.db.commit()
        self.db.refresh(warehouse)
        return warehouse

    # --- Locations ---

    def list_locations(self, warehouse_id: int) -> List[WarehouseLocation]:
        """Locations of a warehouse, default first."""
        self.get(warehouse_id)
        return (
            self.db.query(WarehouseLocation)
            .filter(WarehouseLocation.warehouse_id == warehouse_id)
            .order_by(WarehouseLocation.is_default.desc(), WarehouseLocation.code)
            .all()
        )

    def create_location(
        self,
        warehouse_id: int,
        code: str,
        name: str = "Default",
        is_default: bool = False,
    ) -> WarehouseLocation:
        """Add a location to a warehouse. ``is_default`` moves the warehouse's
        default location flag to it."""
        warehouse = self.get(warehouse_id)
        code = code.strip()
        duplicate = self.db.query(WarehouseLocation).filter(
            WarehouseLocation.warehouse_id == warehouse.id,
            WarehouseLocation.code == code,
        ).first()
        if duplicate:
            raise ValidationFailedError(
                f'Location code "{code}" already exists in this warehouse', field="code"
            )

        if is_default:
            self.db.execute(
                update(WarehouseLocation)
                .where(WarehouseLocation.warehouse_id == warehouse.id)
                .values(is_default=False)
                .execution_options(synchronize_session="fetch")
            )
        location = WarehouseLocation(
            warehouse_id=warehouse.id,
            code=code,
            name=name.strip(),
            is_default=is_default,
        )
        self.db.add(location)
        self.db.flush()

        log_inventory_audit(
            self.db, "create", "warehouse_location", location.id,
            after={
                "warehouseId": warehouse.id,
                "code": location.code,
                "name": location.name,
                "isDefault": location.is_default,
            },
            user_id=self.user_id,
        )
        self.db.commit()
        self.db.refresh(location)
        logger.info(f"Location {location.code} created in warehouse {warehouse.code}")
        return location


def find_location(db: Session, warehouse_id: int, location_id: int) -> Optional[WarehouseLocation]:
    """Return the location only when it belongs to ``warehouse_id``."""
    return db.query(WarehouseLocation).filter(
        WarehouseLocation.id == location_id,
        WarehouseLocation.warehouse_id == warehouse_id,
    ).first()
