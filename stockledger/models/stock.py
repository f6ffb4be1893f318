"""Stock models: InventoryItem (the ledger) and StockMovement (its history)."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import Base

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MovementType(str, Enum):
    """Kinds of ledger deltas; shared with stock document types."""

    RECEIPT = "RECEIPT"  # Goods received (+on hand)
    ISSUE = "ISSUE"  # Goods issued (-on hand)
    ADJUSTMENT = "ADJUSTMENT"  # Signed manual correction
    TRANSFER = "TRANSFER"  # Source -on hand, target +on hand
    RESERVE = "RESERVE"  # Order confirmed (+reserved)
    RELEASE = "RELEASE"  # Order cancelled before shipment (-reserved)
    COMMIT = "COMMIT"  # Order shipped (-on hand, -reserved)
    RESTOCK = "RESTOCK"  # Shipped goods returned (+on hand)


class InventoryItem(Base):
    """Current stock level per product per warehouse.

    ``available_qty`` is stored denormalized and always equals
    ``on_hand_qty - reserved_qty``; only the ledger service writes it.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_product_warehouse"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    on_hand_qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    reserved_qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    available_qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    reorder_point_qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    reorder_qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="inventory_items")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="inventory_items")

    @property
    def is_low_stock(self) -> bool:
        return ZERO < self.available_qty < self.reorder_point_qty


class StockMovement(Base):
    """Append-only record of a single ledger delta. Never updated or deleted."""

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("stock_documents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    line_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("stock_document_lines.id", ondelete="SET NULL"), nullable=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True
    )
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    qty_change_on_hand: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    qty_change_reserved: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO, nullable=False)
    balance_on_hand_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_reserved_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ref_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # order, document
    ref_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True
    )

    # Relationships
    document: Mapped[Optional["StockDocument"]] = relationship(
        "StockDocument", back_populates="movements"
    )
