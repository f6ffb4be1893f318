"""Stock document models: StockDocument and StockDocumentLine."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import Base, TimestampMixin


class DocumentStatus(str, Enum):
    """Stock document lifecycle: DRAFT -> POSTED -> VOID."""

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"


class ReferenceType(str, Enum):
    """What a stock document was raised for."""

    ORDER = "ORDER"
    PO = "PO"
    MANUAL = "MANUAL"


class StockDocument(Base, TimestampMixin):
    """Inventory transaction header (receipt, issue, adjustment, transfer, order action)."""

    __tablename__ = "stock_documents"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DocumentStatus.DRAFT.value, nullable=False, index=True
    )
    warehouse_id: Mapped[int] = mapped_column(
        ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    target_warehouse_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=True
    )
    reference_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    posted_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    warehouse: Mapped["Warehouse"] = relationship("Warehouse", foreign_keys=[warehouse_id])
    target_warehouse: Mapped[Optional["Warehouse"]] = relationship(
        "Warehouse", foreign_keys=[target_warehouse_id]
    )
    lines: Mapped[list["StockDocumentLine"]] = relationship(
        "StockDocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="StockDocumentLine.id",
    )
    movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="document", order_by="StockMovement.id"
    )


class StockDocumentLine(Base):
    """Single product line of a stock document.

    ``qty`` is positive for every type except ADJUSTMENT, where its sign is
    the direction of the correction.
    """

    __tablename__ = "stock_document_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("stock_documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    qty: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    # Where the goods leave from (ISSUE, TRANSFER) and arrive at (RECEIPT, TRANSFER)
    source_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True
    )
    target_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("warehouse_locations.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    document: Mapped["StockDocument"] = relationship("StockDocument", back_populates="lines")
    product: Mapped["Product"] = relationship("Product")
