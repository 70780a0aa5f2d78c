from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from hotel_billing.core.metrics import billing_signals
from hotel_billing.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefined table")


def _is_missing_table(exc: Exception) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


def log_order_action(
    db: Session,
    *,
    hotel_id: str,
    action: str,
    entity_id: str,
    entity_type: str = "ORDER",
    meta: Optional[Mapping[str, Any]] = None,
) -> bool:
    """Writes an audit row inside a savepoint of the caller's transaction.

    Returns False when the audit table is missing; that case is rolled back
    to the savepoint and logged so the primary transition still commits.
    Every other failure propagates.
    """
    entry = AuditLog(
        hotel_id=hotel_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=json.dumps(meta, default=str) if meta else None,
    )
    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except (OperationalError, ProgrammingError) as exc:
        if not _is_missing_table(exc):
            raise
        billing_signals.incr("audit_skipped")
        logger.warning(
            "audit log table missing, skipping %s for %s",
            action,
            entity_id,
            extra={"signal": "audit_skipped", "order_id": entity_id},
        )
        return False
    return True
