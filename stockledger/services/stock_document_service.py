"""Stock Document Service - manual inventory transactions.

Documents are authored as DRAFT, then posted to the ledger in one
transaction: every line applies or none does. Posted documents are never
edited; voiding one appends compensating movements instead.

Line effects when posted:
    RECEIPT     +on hand at the warehouse
    ISSUE       -on hand at the warehouse (needs available stock)
    ADJUSTMENT  signed delta at the warehouse
    TRANSFER    -on hand at the source, +on hand at the target
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from stockledger.models.document import (
    DocumentStatus,
    ReferenceType,
    StockDocument,
    StockDocumentLine,
)
from stockledger.models.product import Product
from stockledger.models.stock import MovementType, StockMovement
from stockledger.models.warehouse import Warehouse
from stockledger.schemas.document import ManualDocumentType, StockDocumentCreate
from stockledger.services.audit_service import log_inventory_audit
from stockledger.services.exceptions import (
    DocumentStateError,
    NotFoundError,
    StockServiceError,
    ValidationFailedError,
)
from stockledger.services.stock_ledger import (
    ZERO,
    MovementPlan,
    apply_movement,
    generate_document_code,
    to_qty,
)
from stockledger.services.warehouse_service import ensure_default_warehouse, find_location

logger = logging.getLogger(__name__)

MANUAL_TYPES = {t.value for t in ManualDocumentType}

CODE_PREFIXES = {
    ManualDocumentType.RECEIPT.value: "REC",
    ManualDocumentType.ISSUE.value: "ISS",
    ManualDocumentType.ADJUSTMENT.value: "ADJ",
    ManualDocumentType.TRANSFER.value: "TRF",
}


class StockDocumentService:
    """Create, post, void and query stock documents."""

    def __init__(self, db: Session, user_id: Optional[int] = None):
        self.db = db
        self.user_id = user_id

    # --- Queries ---

    def get_document(self, document_id: int) -> StockDocument:
        """Load a document with its lines and movements."""
        document = (
            self.db.query(StockDocument)
            .options(
                selectinload(StockDocument.lines).selectinload(StockDocumentLine.product),
                selectinload(StockDocument.movements),
            )
            .filter(StockDocument.id == document_id)
            .first()
        )
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    def list_documents(
        self,
        doc_type: Optional[str] = None,
        status: Optional[str] = None,
        warehouse_id: Optional[int] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[StockDocument], int]:
        """Return one page of documents, newest first, and the total count."""
        query = self.db.query(StockDocument)
        if doc_type:
            query = query.filter(StockDocument.type == doc_type)
        if status:
            query = query.filter(StockDocument.status == status)
        if warehouse_id:
            query = query.filter(
                or_(
                    StockDocument.warehouse_id == warehouse_id,
                    StockDocument.target_warehouse_id == warehouse_id,
                )
            )
        if q:
            pattern = f"%{q}%"
            query = query.filter(
                or_(StockDocument.code.ilike(pattern), StockDocument.note.ilike(pattern))
            )

        total = query.count()
        documents = (
            query.order_by(StockDocument.created_at.desc(), StockDocument.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return documents, total

    # --- Commands ---

    def create_document(self, data: StockDocumentCreate) -> StockDocument:
        """Validate and store a DRAFT document. Has no ledger effect."""
        doc_type = ManualDocumentType(data.type).value

        if data.warehouse_id is not None:
            warehouse = self.db.get(Warehouse, data.warehouse_id)
            if warehouse is None:
                raise ValidationFailedError("Warehouse not found", field="warehouseId")
            if not warehouse.active:
                raise ValidationFailedError("Warehouse is inactive", field="warehouseId")
        else:
            warehouse = ensure_default_warehouse(self.db)

        target_id = None
        target: Optional[Warehouse] = None
        if doc_type == ManualDocumentType.TRANSFER.value:
            if data.target_warehouse_id is None:
                raise ValidationFailedError(
                    "Target warehouse is required for TRANSFER", field="targetWarehouseId"
                )
            target = self.db.get(Warehouse, data.target_warehouse_id)
            if target is None:
                raise ValidationFailedError("Target warehouse not found", field="targetWarehouseId")
            if not target.active:
                raise ValidationFailedError("Target warehouse is inactive", field="targetWarehouseId")
            if target.id == warehouse.id:
                raise ValidationFailedError(
                    "Source and target warehouse must differ", field="targetWarehouseId"
                )
            target_id = target.id

        for index, line in enumerate(data.lines):
            qty = to_qty(line.qty)
            if doc_type == ManualDocumentType.ADJUSTMENT.value:
                if qty == ZERO:
                    raise ValidationFailedError(
                        "Adjustment quantity cannot be zero", field=f"lines.{index}.qty"
                    )
            elif qty <= ZERO:
                raise ValidationFailedError(
                    "Quantity must be positive", field=f"lines.{index}.qty"
                )
            if self.db.get(Product, line.product_id) is None:
                raise ValidationFailedError(
                    f"Product {line.product_id} not found", field=f"lines.{index}.productId"
                )
            self._check_location(line.source_location_id, warehouse, index, "sourceLocationId")
            self._check_location(line.target_location_id, target or warehouse, index, "targetLocationId")

        document = StockDocument(
            code=generate_document_code(CODE_PREFIXES[doc_type]),
            type=doc_type,
            status=DocumentStatus.DRAFT.value,
            warehouse_id=warehouse.id,
            target_warehouse_id=target_id,
            reference_type=(data.reference_type or ReferenceType.MANUAL).value,
            reference_id=data.reference_id,
            note=data.note,
            created_by=self.user_id,
            lines=[
                StockDocumentLine(
                    product_id=line.product_id,
                    qty=to_qty(line.qty),
                    unit_cost=line.unit_cost,
                    source_location_id=line.source_location_id,
                    target_location_id=line.target_location_id,
                )
                for line in data.lines
            ],
        )
        self.db.add(document)
        self.db.flush()

        log_inventory_audit(
            self.db, "create", "stock_document", document.id,
            after={"code": document.code, "type": doc_type, "lines": len(document.lines)},
            user_id=self.user_id,
        )
        self.db.commit()
        logger.info(f"Created {doc_type} document {document.code} with {len(data.lines)} line(s)")
        return self.get_document(document.id)

    def post_document(self, document_id: int) -> StockDocument:
        """Apply a DRAFT document to the ledger.

        Raises:
            DocumentStateError: the document is not a DRAFT.
            InsufficientStockError: a line would drive stock negative; nothing
                is applied.
        """
        document = self._lock_document(document_id)
        if document.status != DocumentStatus.DRAFT.value:
            raise DocumentStateError(
                f"Document {document.code} is {document.status}; only DRAFT documents can be posted",
                {"status": document.status},
            )
        if not document.lines:
            raise ValidationFailedError("Document has no lines", field="lines")

        try:
            for line in document.lines:
                for plan in self._line_plans(document, line):
                    apply_movement(self.db, plan)

            document.status = DocumentStatus.POSTED.value
            document.posted_by = self.user_id
            document.posted_at = datetime.now(timezone.utc)
            log_inventory_audit(
                self.db, "post", "stock_document", document.id,
                before={"status": DocumentStatus.DRAFT.value},
                after={"status": DocumentStatus.POSTED.value, "lines": len(document.lines)},
                user_id=self.user_id,
            )
            self.db.commit()
        except StockServiceError as e:
            self.db.rollback()
            logger.warning(f"Posting document {document_id} failed: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Posted document {document.code} ({document.type})")
        return self.get_document(document_id)

    def void_document(self, document_id: int) -> StockDocument:
        """Void a document.

        A DRAFT is simply marked VOID. A POSTED document gets one compensating
        movement per original movement; the reversal must not drive stock
        negative. Order stock documents cannot be voided here.
        """
        document = self._lock_document(document_id)
        if document.status == DocumentStatus.VOID.value:
            raise DocumentStateError(f"Document {document.code} is already void", {"status": document.status})
        if document.type not in MANUAL_TYPES:
            raise DocumentStateError(
                f"{document.type} documents are driven by orders and cannot be voided",
                {"type": document.type},
            )

        previous = document.status
        try:
            reversed_count = 0
            if previous == DocumentStatus.POSTED.value:
                originals = [
                    m for m in document.movements if not m.idempotency_key.startswith("void:")
                ]
                for movement in originals:
                    _, created = apply_movement(self.db, self._reversal_plan(document, movement))
                    reversed_count += int(created)

            document.status = DocumentStatus.VOID.value
            log_inventory_audit(
                self.db, "void", "stock_document", document.id,
                before={"status": previous},
                after={"status": DocumentStatus.VOID.value, "reversedMovements": reversed_count},
                user_id=self.user_id,
            )
            self.db.commit()
        except StockServiceError as e:
            self.db.rollback()
            logger.warning(f"Voiding document {document_id} failed: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Voided document {document.code} (was {previous}, {reversed_count} reversal(s))")
        return self.get_document(document_id)

    # --- Helpers ---

    def _lock_document(self, document_id: int) -> StockDocument:
        document = (
            self.db.query(StockDocument)
            .filter(StockDocument.id == document_id)
            .with_for_update()
            .first()
        )
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    def _line_plans(self, document: StockDocument, line: StockDocumentLine) -> List[MovementPlan]:
        """Ledger deltas produced by posting one line."""
        qty = to_qty(line.qty)
        key = f"doc:{document.id}:line:{line.id}:post"
        common: Dict[str, Any] = {
            "movement_type": MovementType(document.type),
            "document_id": document.id,
            "line_id": line.id,
            "reason": f"{document.type} {document.code}",
            "ref_type": "document",
            "ref_id": document.id,
            "created_by": self.user_id,
        }

        if document.type == ManualDocumentType.RECEIPT.value:
            return [MovementPlan(line.product_id, document.warehouse_id, idempotency_key=key,
                                 qty_change_on_hand=qty,
                                 location_id=line.target_location_id or line.source_location_id, **common)]
        if document.type == ManualDocumentType.ISSUE.value:
            return [MovementPlan(line.product_id, document.warehouse_id, idempotency_key=key,
                                 qty_change_on_hand=-qty,
                                 location_id=line.source_location_id or line.target_location_id, **common)]
        if document.type == ManualDocumentType.ADJUSTMENT.value:
            return [MovementPlan(line.product_id, document.warehouse_id, idempotency_key=key,
                                 qty_change_on_hand=qty,
                                 location_id=line.source_location_id or line.target_location_id, **common)]
        if document.type == ManualDocumentType.TRANSFER.value:
            return [
                MovementPlan(line.product_id, document.warehouse_id, idempotency_key=f"{key}:src",
                             qty_change_on_hand=-qty, location_id=line.source_location_id, **common),
                MovementPlan(line.product_id, document.target_warehouse_id, idempotency_key=f"{key}:tgt",
                             qty_change_on_hand=qty, location_id=line.target_location_id, **common),
            ]
        raise DocumentStateError(f"{document.type} documents cannot be posted manually")

    def _check_location(
        self, location_id: Optional[int], warehouse: Warehouse, index: int, field: str
    ) -> None:
        if location_id is not None and find_location(self.db, warehouse.id, location_id) is None:
            raise ValidationFailedError(
                f"Location {location_id} not found in warehouse {warehouse.code}",
                field=f"lines.{index}.{field}",
            )

    def _reversal_plan(self, document: StockDocument, movement: StockMovement) -> MovementPlan:
        return MovementPlan(
            product_id=movement.product_id,
            warehouse_id=movement.warehouse_id,
            movement_type=MovementType(movement.movement_type),
            idempotency_key=f"void:{movement.idempotency_key}",
            location_id=movement.location_id,
            qty_change_on_hand=-movement.qty_change_on_hand,
            qty_change_reserved=-movement.qty_change_reserved,
            document_id=document.id,
            line_id=movement.line_id,
            reason=f"Void {document.code}",
            ref_type="document",
            ref_id=document.id,
            created_by=self.user_id,
        )

