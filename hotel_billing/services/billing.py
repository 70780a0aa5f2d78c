from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from hotel_billing.core.config import BILLING_LOCK_TTL_SECONDS
from hotel_billing.core.errors import VersionConflictError
from hotel_billing.invoicing.base import InvoiceGenerator
from hotel_billing.invoicing.service import compose
from hotel_billing.models.order import TableOrder
from hotel_billing.services import orders as order_service
from hotel_billing.services.invoice_storage import InvoiceStorage, StoredInvoice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingResult:
    order: TableOrder
    invoice: StoredInvoice
    artifact_url: Optional[str] = None


def bill_order(
    db: Session,
    storage: InvoiceStorage,
    *,
    hotel_id: str,
    order_id: str,
    holder_id: str,
    adjustment_a_percentage: Any = 0,
    adjustment_b_percentage: Any = 0,
    discount_amount: Any = 0,
    hotel_name: str = "",
    generator: Optional[InvoiceGenerator] = None,
    lock_ttl: float = BILLING_LOCK_TTL_SECONDS,
) -> BillingResult:
    """Locks an open order, issues its invoice and closes it.

    If anything fails after the lock is taken the order stays OPEN and the
    lock runs out on its own TTL. A stored invoice is never rolled back.
    """
    order_service.get_order(db, order_id, hotel_id=hotel_id)
    locked = order_service.lock_for_billing(db, order_id=order_id, holder_id=holder_id, ttl=lock_ttl)

    document = compose(
        locked,
        adjustment_a_percentage,
        adjustment_b_percentage,
        discount_amount,
        hotel_name,
        generator=generator,
    )
    stored = storage.store(hotel_id, document)

    try:
        billed = order_service.mark_billed(
            db,
            order_id=order_id,
            invoice_id=stored.invoice_id,
            expected_version=locked.version,
        )
    except VersionConflictError as exc:
        logger.warning(
            "invoice stored but order could not be closed: %s",
            exc.message,
            extra={
                "signal": "orphaned_invoice",
                "order_id": order_id,
                "invoice_id": stored.invoice_id,
                "invoice_number": stored.invoice_number,
                "expected_version": locked.version,
                "current_version": exc.current_version,
                "current_status": exc.current_status,
            },
        )
        raise

    logger.info(
        "order billed",
        extra={"order_id": order_id, "invoice_id": stored.invoice_id, "invoice_number": stored.invoice_number},
    )
    return BillingResult(order=billed, invoice=stored, artifact_url=storage.artifact_url(stored))
