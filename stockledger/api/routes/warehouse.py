"""Warehouse overview and stock document routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse

from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import RequireAdmin, RequireStaff
from stockledger.core.responses import paginated_response, service_error_response
from stockledger.db.session import DbSession
from stockledger.models.document import DocumentStatus
from stockledger.schemas.document import (
    StockDocumentCreate,
    StockDocumentDetail,
    StockDocumentResponse,
)
from stockledger.schemas.inventory import WarehouseOverview
from stockledger.services.exceptions import StockServiceError
from stockledger.services.inventory_service import InventoryService
from stockledger.services.stock_document_service import StockDocumentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/overview")
@limiter.limit("60/minute")
def get_overview(request: Request, db: DbSession, current_user: RequireStaff):
    """Stock totals, low/out-of-stock counts and today's movement count."""
    overview = InventoryService(db).get_overview()
    return WarehouseOverview.model_validate(overview).to_json()


@router.get("/docs")
@limiter.limit("60/minute")
def list_documents(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    doc_type: Optional[str] = Query(None, alias="type"),
    doc_status: Optional[DocumentStatus] = Query(None, alias="status"),
    warehouse_id: Optional[int] = Query(None, alias="warehouseId"),
    q: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
):
    """List stock documents, newest first (paginated)."""
    documents, total = StockDocumentService(db).list_documents(
        doc_type=doc_type,
        status=doc_status.value if doc_status else None,
        warehouse_id=warehouse_id,
        q=q,
        page=page,
        page_size=page_size,
    )
    return paginated_response(
        "docs",
        [StockDocumentResponse.model_validate(d).to_json() for d in documents],
        total,
        page,
        page_size,
    )


@router.post("/docs", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_document(
    request: Request,
    body: StockDocumentCreate,
    db: DbSession,
    current_user: RequireStaff,
):
    """Create a DRAFT stock document. Posting applies it to the ledger."""
    try:
        document = StockDocumentService(db, current_user.user_id).create_document(body)
    except StockServiceError as e:
        return service_error_response(e)
    return {"document": StockDocumentDetail.model_validate(document).to_json()}


@router.get("/docs/{document_id}")
@limiter.limit("60/minute")
def get_document(
    request: Request,
    document_id: int,
    db: DbSession,
    current_user: RequireStaff,
):
    """Get a stock document with its lines and movements."""
    try:
        document = StockDocumentService(db).get_document(document_id)
    except StockServiceError as e:
        return service_error_response(e)
    return {"document": StockDocumentDetail.model_validate(document).to_json()}


@router.post("/docs/{document_id}/post")
@limiter.limit("30/minute")
def post_document(
    request: Request,
    document_id: int,
    db: DbSession,
    current_user: RequireStaff,
):
    """Post a DRAFT document: all lines apply or none do."""
    try:
        document = StockDocumentService(db, current_user.user_id).post_document(document_id)
    except StockServiceError as e:
        return service_error_response(e)
    return {"document": StockDocumentDetail.model_validate(document).to_json()}


@router.post("/docs/{document_id}/void")
@limiter.limit("30/minute")
def void_document(
    request: Request,
    document_id: int,
    db: DbSession,
    current_user: RequireAdmin,
):
    """Void a document, reversing its movements when it was posted."""
    try:
        document = StockDocumentService(db, current_user.user_id).void_document(document_id)
    except StockServiceError as e:
        return service_error_response(e)
    return {"document": StockDocumentDetail.model_validate(document).to_json()}
