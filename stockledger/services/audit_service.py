"""Inventory audit logging.

Writes a before/after snapshot for administrative inventory changes
(documents, warehouses, reorder settings) into ``inventory_audit_logs``.
Entries are added to the caller's session and only flushed, so they are
committed or rolled back together with the change they describe.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from stockledger.models.audit import InventoryAuditLog

logger = logging.getLogger("audit")


def log_inventory_audit(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    user_id: Optional[int] = None,
) -> InventoryAuditLog:
    """Add an audit entry to the caller's transaction.

    Args:
        db: The session owning the audited change.
        action: What happened (create, update, post, void, reorder_update, ...)
        entity_type: Kind of entity (stock_document, warehouse, inventory_item)
        entity_id: ID of the affected entity
        before: Snapshot prior to the change
        after: Snapshot after the change
        user_id: ID of the user performing the action
    """
    entry = InventoryAuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        before=before,
        after=after,
        created_by=user_id,
    )
    db.add(entry)
    db.flush()
    logger.info(f"{action} {entity_type} {entity_id} by user {user_id}")
    return entry
